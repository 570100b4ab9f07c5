import os

import config


def test_bundled_category_images_load():
    images = config.load_category_images()

    assert images
    assert all(key == key.lower() for key in images)


def test_installed_category_images_are_found(tmp_path, monkeypatch):
    # an installed copy: nothing beside the module, the map under <prefix>/share
    share = tmp_path / "prefix" / "share" / config.DATA_DIR_NAME
    share.mkdir(parents=True)
    (share / "category_images.json").write_text('{"Rugs": "https://img.example.com/rugs.jpg"}')
    monkeypatch.setattr(config, "__file__", str(tmp_path / "site-packages" / "config.py"))
    monkeypatch.setattr(config.sys, "prefix", str(tmp_path / "prefix"))

    path = config.default_category_images_file()

    assert path == os.path.join(str(share), "category_images.json")
    monkeypatch.setattr(config, "CATEGORY_HERO_IMAGES_FILE", path)
    assert config.load_category_images() == {"rugs": "https://img.example.com/rugs.jpg"}


def test_inline_category_images_win(monkeypatch):
    monkeypatch.setenv("CATEGORY_HERO_IMAGES", '{"Kitchen": "https://img.example.com/k.jpg"}')

    assert config.load_category_images() == {"kitchen": "https://img.example.com/k.jpg"}
