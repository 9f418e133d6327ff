from app.events.payloads import (
    CustomPayload,
    DietaryTogglePayload,
    PerformanceMetricPayload,
    ViewRecipePayload,
    parse_payload,
)


def test_known_event_parses_to_typed_payload() -> None:
    payload = parse_payload("view_recipe", {"recipe_name": "Pasta", "difficulty": "easy"})
    assert isinstance(payload, ViewRecipePayload)
    assert payload.recipe_name == "Pasta"
    assert payload.difficulty == "easy"


def test_unknown_event_falls_back_to_custom_payload() -> None:
    payload = parse_payload("my_custom_event", {"foo": 1})
    assert isinstance(payload, CustomPayload)
    assert payload.to_attributes() == {"foo": 1}


def test_invalid_known_payload_falls_back_instead_of_raising() -> None:
    payload = parse_payload("dietary_toggle", {"preference": "Vegan", "action": "maybe"})
    assert not isinstance(payload, DietaryTogglePayload)
    assert isinstance(payload, CustomPayload)
    assert payload.to_attributes()["action"] == "maybe"


def test_extra_client_keys_are_kept() -> None:
    payload = parse_payload(
        "performance_metric", {"metric_name": "app_load_time", "value_ms": 812.5, "device": "pixel"}
    )
    assert isinstance(payload, PerformanceMetricPayload)
    assert payload.to_attributes() == {
        "metric_name": "app_load_time",
        "value_ms": 812.5,
        "device": "pixel",
    }


def test_missing_attributes_are_treated_as_empty() -> None:
    assert parse_payload("anything", None).to_attributes() == {}
