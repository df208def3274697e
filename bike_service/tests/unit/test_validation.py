"""Unit tests for the validation gate."""

import pytest

from bike_service.app.codec import bike_codec
from bike_service.app.errors import ValidationError
from bike_service.app.validation import validate_bike, validate_filters


def reasons(exc_info):
    return dict(exc_info.value.errors)


class TestValidateBike:
    def test_valid_payload_is_normalized(self, bike_payload):
        cleaned = validate_bike(bike_payload)

        assert cleaned["hourlyCost"] == 5.0
        assert isinstance(cleaned["hourlyCost"], float)
        assert cleaned["ownerUserId"] == 1
        assert "id" not in cleaned
        assert "available" not in cleaned

    def test_unknown_fields_are_dropped(self, bike_payload):
        bike_payload["color"] = "red"
        assert "color" not in validate_bike(bike_payload, "update")

    @pytest.mark.parametrize("field", ["id", "available"])
    def test_server_fields_cannot_be_provided(self, bike_payload, field):
        bike_payload[field] = True

        with pytest.raises(ValidationError) as exc_info:
            validate_bike(bike_payload)
        assert reasons(exc_info) == {field: "cannot be provided"}

    def test_negative_cost(self, bike_factory):
        with pytest.raises(ValidationError) as exc_info:
            validate_bike(bike_factory(hourlyCost=-1))
        assert reasons(exc_info) == {"hourlyCost": "must be greater than 0"}

    def test_all_violations_are_collected(self):
        payload = {
            "id": 9,
            "manufacturer": "   ",
            "type": "scooter",
            "hourlyCost": 0,
            "ownerUserId": -3,
            "suitableHeightInMeters": "tall",
            "maximumWeightInKg": True,
        }

        with pytest.raises(ValidationError) as exc_info:
            validate_bike(payload, "update")

        assert reasons(exc_info) == {
            "id": "cannot be provided",
            "manufacturer": "must not be empty",
            "model": "is required",
            "type": "must be one of: mountain, road, tandem",
            "hourlyCost": "must be greater than 0",
            "ownerUserId": "must be a positive integer",
            "suitableHeightInMeters": "must be a number",
            "maximumWeightInKg": "must be a number",
        }

    def test_numeric_text_accepted_unless_strict(self, bike_factory):
        payload = bike_factory(hourlyCost="7.5", ownerUserId="4")

        cleaned = validate_bike(payload)
        assert cleaned["hourlyCost"] == 7.5
        assert cleaned["ownerUserId"] == 4

        with pytest.raises(ValidationError) as exc_info:
            validate_bike(payload, strict_numbers=True)
        assert reasons(exc_info) == {
            "hourlyCost": "must be a number, not text",
            "ownerUserId": "must be a number, not text",
        }

    def test_fractional_owner_rejected(self, bike_factory):
        with pytest.raises(ValidationError) as exc_info:
            validate_bike(bike_factory(ownerUserId=1.5))
        assert "ownerUserId" in reasons(exc_info)

    def test_large_owner_id_is_exact(self, bike_factory):
        cleaned = validate_bike(bike_factory(ownerUserId=2 ** 53 + 1))

        assert cleaned["ownerUserId"] == 2 ** 53 + 1
        assert isinstance(cleaned["ownerUserId"], int)
        assert validate_bike(bike_factory(ownerUserId=str(2 ** 53 + 1)))["ownerUserId"] == 2 ** 53 + 1

    def test_owner_id_above_64_bits(self, bike_factory):
        with pytest.raises(ValidationError) as exc_info:
            validate_bike(bike_factory(ownerUserId=2 ** 63))
        assert reasons(exc_info) == {"ownerUserId": "must be at most 9223372036854775807"}

    @pytest.mark.parametrize("cost", [10 ** 400, "1e400", float("inf")])
    def test_cost_must_be_finite(self, bike_factory, cost):
        with pytest.raises(ValidationError) as exc_info:
            validate_bike(bike_factory(hourlyCost=cost))
        assert reasons(exc_info) == {"hourlyCost": "must be a finite number"}

    def test_non_object_body(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_bike(["not", "a", "bike"])
        assert reasons(exc_info) == {"body": "must be a JSON object"}

    def test_unknown_operation(self, bike_payload):
        with pytest.raises(ValueError):
            validate_bike(bike_payload, "patch")


class TestValidateFilters:
    def test_values_are_coerced(self):
        assert validate_filters({"type": "road", "hourlyCost": "5"}, bike_codec) == {
            "type": "road",
            "hourlyCost": 5.0,
        }

    def test_bad_filters_are_reported(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_filters({"colour": "red", "available": "false", "ownerUserId": "me"}, bike_codec)

        errors = reasons(exc_info)
        assert errors["colour"] == "is not a filterable field"
        assert errors["available"] == "cannot be used as a filter"
        assert "ownerUserId" in errors

    def test_integer_filter_above_64_bits(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_filters({"ownerUserId": str(2 ** 63)}, bike_codec)
        assert reasons(exc_info) == {"ownerUserId": "must be at most 9223372036854775807"}

    def test_large_integer_filter_is_exact(self):
        assert validate_filters({"ownerUserId": str(2 ** 53 + 1)}, bike_codec) == {
            "ownerUserId": 2 ** 53 + 1,
        }
