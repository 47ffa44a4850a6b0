import json
from pathlib import Path
from typing import Iterable

import pytest

from price_tracker.catalog.db import ProductDatabase
from price_tracker.catalog.staging import StagingEditor
from price_tracker.catalog.models import StagedProduct
from price_tracker.cli.main import edit_interactively, main, run_scan

from conftest import make_image_bytes


def _answers(values: Iterable[str]):
    it = iter(values)
    return lambda _prompt: next(it)


@pytest.fixture
def project(tmp_path: Path, monkeypatch) -> Path:
    (tmp_path / "README.md").write_text("test marker", encoding="utf-8")
    for key in ("STORAGE_BACKEND", "VISION_API_KEY", "GROQ_API_KEY", "OPENAI_API_KEY"):
        monkeypatch.delenv(key, raising=False)
    return tmp_path


def test_edit_interactively_updates_drops_and_adds():
    editor = StagingEditor([
        StagedProduct(text="MLK", product_name="MLK", price=None, currency="UAH"),
        StagedProduct(text="junk", product_name="junk", price=1.0, currency="UAH"),
    ])
    answers = _answers([
        "Milk", "abc", "41,90", "",   # row 1: rename, bad price then good price, keep currency
        "-",                          # row 2: drop
        "Eggs", "60", "uah",          # add a row
        "",                           # stop adding
        "y",
    ])
    assert edit_interactively(editor, answers) is True
    records = editor.records
    assert [(r.product_name, r.price, r.currency) for r in records] == [("Milk", 41.9, "UAH"), ("Eggs", 60.0, "UAH")]


def test_run_scan_saves_reviewed_products(service, fake_vision, tmp_path):
    image = tmp_path / "receipt.jpg"
    image.write_bytes(make_image_bytes())
    fake_vision.replies.append('{"title": "Milk", "price": 2.5, "currency": "UAH"}')

    assert run_scan(service, str(image), assume_yes=True) == 0
    [product] = service.recent().products
    assert product.name == "Milk"
    assert product.image_url.startswith("http://testserver/media/product-images/")


def test_run_scan_discard_writes_nothing(service, fake_vision, tmp_path):
    image = tmp_path / "receipt.jpg"
    image.write_bytes(make_image_bytes())
    fake_vision.replies.append('{"title": "Milk", "price": 2.5}')

    assert run_scan(service, str(image), prompt=_answers(["", "", "", "", "n"])) == 0
    assert service.db.count_products() == 0


def test_run_scan_reports_unparsable_output(service, fake_vision, tmp_path, capsys):
    image = tmp_path / "receipt.jpg"
    image.write_bytes(make_image_bytes())
    fake_vision.replies.append("no idea")
    assert run_scan(service, str(image), assume_yes=True) == 1
    assert "no idea" in capsys.readouterr().out


def test_run_scan_missing_file(service, tmp_path):
    assert run_scan(service, str(tmp_path / "nope.jpg"), assume_yes=True) == 2


def test_init_search_and_recent_commands(project, capsys):
    assert main(["--root", str(project), "init"]) == 0
    db_path = capsys.readouterr().out.strip()
    assert db_path == str(project / "var" / "catalog" / "products.sqlite3")

    ProductDatabase(root_dir=str(project)).insert_products([
        {"name": "Oat Milk", "price": 3.2, "currency": "PLN", "ocr_text": None, "image_url": None, "location": None},
    ])
    assert main(["--root", str(project), "search", "milk"]) == 0
    assert "Oat Milk  3.20 zł  Unknown location" in capsys.readouterr().out

    assert main(["--root", str(project), "recent", "--json"]) == 0
    [item] = json.loads(capsys.readouterr().out)
    assert item["name"] == "Oat Milk"

    assert main(["--root", str(project), "search", " "]) == 1
