import json

import pytest

from price_tracker.catalog.parser import (
    EmbeddedJson,
    NormalizationError,
    ObjectArray,
    SingleObject,
    Unparsable,
    model_error,
    normalize_payload,
    normalize_response,
    parse_model_output,
)


def test_single_object_yields_one_record():
    records = normalize_response('{"title": "Milk 1L", "price": 2.5, "currency": "EUR"}')
    assert len(records) == 1
    rec = records[0]
    assert rec.product_name == "Milk 1L"
    assert rec.text == "Milk 1L"
    assert rec.price == 2.5
    assert rec.currency == "EUR"


def test_array_preserves_order_and_count():
    text = json.dumps([
        {"title": "Bread", "price": 1.2, "currency": "UAH"},
        {"title": "Cheese", "price": None, "currency": "UAH"},
        {"title": "Eggs", "price": 3, "currency": "UAH"},
    ])
    assert isinstance(parse_model_output(text), ObjectArray)
    records = normalize_response(text)
    assert [r.product_name for r in records] == ["Bread", "Cheese", "Eggs"]
    assert records[1].price is None
    assert records[2].price == 3.0


def test_prose_wrapped_object_is_recovered():
    text = 'Sure! Here is the JSON: {"title": "Milk", "price": 2.5} Let me know if you need more.'
    parsed = parse_model_output(text)
    assert isinstance(parsed, EmbeddedJson)
    assert parsed.raw_text == text
    [rec] = normalize_response(text)
    assert (rec.product_name, rec.price, rec.currency) == ("Milk", 2.5, "USD")


def test_fenced_block_is_recovered():
    text = 'Result:\n```json\n[{"title": "Apples", "price": 1.99, "currency": "PLN"}]\n```'
    [rec] = normalize_response(text)
    assert rec.product_name == "Apples"
    assert rec.currency == "PLN"


def test_unparsable_keeps_raw_text():
    parsed = parse_model_output("not json at all")
    assert isinstance(parsed, Unparsable)
    with pytest.raises(NormalizationError) as excinfo:
        normalize_response("not json at all")
    assert excinfo.value.raw_content == "not json at all"


@pytest.mark.parametrize("text", ["", "   ", None])
def test_empty_output_is_unparsable(text):
    assert isinstance(parse_model_output(text), Unparsable)


@pytest.mark.parametrize(
    "price, expected",
    [("2.50", None), (True, None), (None, None), (0, 0.0), (4.75, 4.75)],
)
def test_price_is_number_or_none(price, expected):
    [rec] = normalize_payload({"title": "x", "price": price})
    assert rec.price == expected


@pytest.mark.parametrize(
    "currency, expected",
    [("eur", "EUR"), ("₴", "UAH"), ("zł", "PLN"), ("$", "USD"), (None, "USD"), ("dollars", "USD")],
)
def test_currency_codes(currency, expected):
    [rec] = normalize_payload({"title": "x", "currency": currency})
    assert rec.currency == expected


def test_missing_title_falls_back_to_other_keys():
    [a, b, c] = normalize_payload([{"productName": "Tea"}, {"name": "Rice"}, {"price": 1}])
    assert a.product_name == "Tea"
    assert b.product_name == "Rice"
    assert c.product_name == ""


def test_non_object_items_are_rejected():
    with pytest.raises(NormalizationError):
        normalize_payload([{"title": "ok"}, "oops"])


def test_normalize_is_idempotent():
    first = normalize_response('[{"title": "Milk", "price": 2.5, "currency": "uah"}, {"title": "Salt"}]')
    again = normalize_payload([r.to_payload() for r in first])
    assert again == first


def test_model_error_detected_only_without_product_fields():
    assert model_error(SingleObject({"error": "blurry image"})) == "blurry image"
    assert model_error(SingleObject({"error": "x", "title": "Milk"})) is None
    assert model_error(ObjectArray([{"error": "x"}])) is None
    assert model_error(Unparsable("nope")) is None


def test_prose_wrapped_array_keeps_every_item():
    text = 'Here you go: [{"title": "Milk", "price": 2.5}, {"title": "Bread", "price": 1.2}] Enjoy!'
    parsed = parse_model_output(text)
    assert isinstance(parsed, EmbeddedJson)
    assert isinstance(parsed.payload, list)
    assert [r.product_name for r in normalize_response(text)] == ["Milk", "Bread"]


def test_prose_wrapped_object_containing_a_list():
    text = 'Result: {"title": "Eggs", "tags": ["dozen"], "price": 3} done'
    [rec] = normalize_response(text)
    assert (rec.product_name, rec.price) == ("Eggs", 3.0)
