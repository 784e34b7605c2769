import re
import zipfile

import pytest

from brightkids.common import ValidationError
from brightkids.pdf_generation import (
    StorybookPDFBuilder,
    archive_filename,
    asset_filename,
    build_image_archive,
    load_assets,
    pdf_filename,
    write_assets,
)
from brightkids.pipeline import GeneratedAsset, Slot
from conftest import make_png


@pytest.fixture
def assets():
    slots = [Slot.dedication(), Slot.page(2), Slot.cover(), Slot.page(1), Slot.page(10)]
    return {
        slot: GeneratedAsset(slot=slot, image=make_png(1024, 1536), width=1024, height=1536)
        for slot in slots
    }


def test_filenames_are_sanitised():
    assert pdf_filename("Ava's Brave Day!") == "Ava_s_Brave_Day__storybook.pdf"
    assert archive_filename("Ava's Brave Day!") == "Ava_s_Brave_Day__images.zip"


def test_asset_filenames():
    assert asset_filename(Slot.cover()) == "00-cover.png"
    assert asset_filename(Slot.page(3)) == "page-03.png"
    assert asset_filename(Slot.dedication()) == "99-dedication.png"


def test_pdf_has_one_page_per_asset(tmp_path, assets):
    path = StorybookPDFBuilder(show_page_numbers=True).build("Ava's Day", assets, tmp_path)

    assert path.name == "Ava_s_Day_storybook.pdf"
    data = path.read_bytes()
    assert data.startswith(b"%PDF")
    assert re.search(rb"/Count\s+5\b", data)


def test_pdf_without_assets_is_rejected(tmp_path):
    with pytest.raises(ValidationError):
        StorybookPDFBuilder().build("Empty", {}, tmp_path / "empty.pdf")


def test_zip_contains_slot_files_in_order(tmp_path, assets):
    path = build_image_archive(assets, tmp_path, title="Ava's Day")

    assert path.name == "Ava_s_Day_images.zip"
    with zipfile.ZipFile(path) as archive:
        assert archive.namelist() == [
            "00-cover.png",
            "page-01.png",
            "page-02.png",
            "page-10.png",
            "99-dedication.png",
        ]
        assert archive.read("page-02.png") == assets[Slot.page(2)].image


def test_written_assets_load_back(tmp_path, assets):
    write_assets(assets, tmp_path)
    (tmp_path / "avatar.png").write_bytes(make_png(4, 4))

    loaded = load_assets(tmp_path)

    assert set(loaded) == set(assets)
    assert loaded[Slot.page(10)].image == assets[Slot.page(10)].image
    assert (loaded[Slot.cover()].width, loaded[Slot.cover()].height) == (1024, 1536)
