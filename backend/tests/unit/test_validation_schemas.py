"""
tests/unit/test_validation_schemas.py — Unit tests for all marshmallow schemas.

What this file proves:
  - Every schema accepts valid input without raising
  - Request-shape rules (types, lengths, enum values, precision, identity
    shape) are enforced by schemas with the registered error codes
  - Bill rules that need the whole bill (duplicates, split sums) are NOT
    tested here; they belong to the bill builder

No database, no Flask application context: schemas inherit from
marshmallow.Schema directly.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from marshmallow import ValidationError

from backend.app.errors import ErrorCode
from backend.app.models.bill import MAX_AMOUNT, MAX_QUANTITY, SplitMethod
from backend.app.schemas.auth_schema import (
    AddBalanceSchema,
    LoginSchema,
    RefreshTokenSchema,
    RegisterSchema,
)
from backend.app.schemas.bill_schema import CreateBillSchema, PayBillSchema


# ═══════════════════════════════════════════════════════════════════════════
# Auth schemas
# ═══════════════════════════════════════════════════════════════════════════

class TestRegisterSchema:

    def _load(self, data: dict):
        return RegisterSchema().load(data)

    def test_valid_payload(self):
        result = self._load({"username": "alice_99", "password": "Secure123"})
        assert result["username"] == "alice_99"

    @pytest.mark.parametrize("username", ["ab", "a" * 51, "alice!", "alice smith"])
    def test_bad_username(self, username):
        with pytest.raises(ValidationError) as exc:
            self._load({"username": username, "password": "Secure123"})
        assert "username" in exc.value.messages

    @pytest.mark.parametrize("password", ["Short1", "allletters", "12345678"])
    def test_weak_password(self, password):
        with pytest.raises(ValidationError) as exc:
            self._load({"username": "alice", "password": password})
        assert "password" in exc.value.messages

    def test_missing_fields(self):
        with pytest.raises(ValidationError) as exc:
            self._load({})
        assert set(exc.value.messages) == {"username", "password"}


class TestLoginAndRefreshSchemas:

    def test_login_requires_both_fields(self):
        with pytest.raises(ValidationError) as exc:
            LoginSchema().load({"username": "alice"})
        assert "password" in exc.value.messages

    def test_refresh_token_required(self):
        with pytest.raises(ValidationError) as exc:
            RefreshTokenSchema().load({})
        assert "refresh_token" in exc.value.messages


class TestAddBalanceSchema:

    def _load(self, data: dict):
        return AddBalanceSchema().load(data)

    def test_returns_decimal(self):
        result = self._load({"amount": "50000"})
        assert result["amount"] == Decimal("50000")
        assert isinstance(result["amount"], Decimal)

    def test_two_decimal_places_accepted(self):
        assert self._load({"amount": "10.25"})["amount"] == Decimal("10.25")

    @pytest.mark.parametrize("amount", ["0", "-5", "0.00"])
    def test_non_positive_rejected(self, amount):
        with pytest.raises(ValidationError) as exc:
            self._load({"amount": amount})
        assert "amount" in exc.value.messages

    def test_three_decimal_places_rejected_not_rounded(self):
        with pytest.raises(ValidationError) as exc:
            self._load({"amount": "10.125"})
        assert exc.value.messages["amount"] == [ErrorCode.INVALID_AMOUNT_PRECISION]

    def test_not_a_number(self):
        with pytest.raises(ValidationError):
            self._load({"amount": "lots"})

    def test_largest_storable_amount_accepted(self):
        assert self._load({"amount": str(MAX_AMOUNT)})["amount"] == MAX_AMOUNT

    def test_amount_above_column_capacity_rejected(self):
        with pytest.raises(ValidationError) as exc:
            self._load({"amount": "123456789012345678.91"})
        assert "amount" in exc.value.messages


# ═══════════════════════════════════════════════════════════════════════════
# CreateBillSchema
# ═══════════════════════════════════════════════════════════════════════════

def _payload(**overrides) -> dict:
    data = {
        "bill_name": "Dinner",
        "split_method": "equal",
        "participants": [{"user_id": 1}, {"external_name": "Charlie"}],
        "items": [{"name": "Pizza", "price_per_unit": "90000", "quantity": 1}],
    }
    data.update(overrides)
    return data


class TestCreateBillSchema:

    def _load(self, data: dict):
        return CreateBillSchema().load(data)

    def test_valid_equal_payload(self):
        result = self._load(_payload())
        assert result["split_method"] == SplitMethod.EQUAL
        assert result["items"][0]["price_per_unit"] == Decimal("90000")
        assert result["items"][0]["split"] is None
        assert result["participants"][0] == {"user_id": 1, "username": None, "external_name": None}

    def test_valid_per_product_payload(self):
        result = self._load(_payload(
            split_method="per_product",
            participants=[{"username": "alice"}, {"external_name": "Charlie"}],
            items=[{
                "name": "Rice",
                "price_per_unit": "50000",
                "quantity": 3,
                "split": [
                    {"username": "alice", "quantity": 2},
                    {"external_name": "Charlie", "quantity": 1},
                ],
            }],
        ))
        assert result["split_method"] == SplitMethod.PER_PRODUCT
        assert [s["quantity"] for s in result["items"][0]["split"]] == [2, 1]

    def test_derived_fields_are_ignored(self):
        result = self._load(_payload(total_amount="1", status="paid"))
        assert "total_amount" not in result
        assert "status" not in result

    def test_unknown_split_method(self):
        with pytest.raises(ValidationError) as exc:
            self._load(_payload(split_method="by_weight"))
        assert exc.value.messages["split_method"] == [ErrorCode.INVALID_SPLIT_METHOD]

    @pytest.mark.parametrize("field", ["bill_name", "split_method", "participants", "items"])
    def test_required_fields(self, field):
        data = _payload()
        del data[field]
        with pytest.raises(ValidationError) as exc:
            self._load(data)
        assert field in exc.value.messages

    def test_blank_bill_name(self):
        with pytest.raises(ValidationError) as exc:
            self._load(_payload(bill_name="   "))
        assert "bill_name" in exc.value.messages

    def test_empty_lists_rejected(self):
        with pytest.raises(ValidationError) as exc:
            self._load(_payload(participants=[], items=[]))
        assert {"participants", "items"} <= set(exc.value.messages)

    def test_price_precision(self):
        items = [{"name": "Pizza", "price_per_unit": "9.999", "quantity": 1}]
        with pytest.raises(ValidationError) as exc:
            self._load(_payload(items=items))
        assert exc.value.messages["items"][0]["price_per_unit"] == [ErrorCode.INVALID_AMOUNT_PRECISION]

    def test_negative_price(self):
        items = [{"name": "Pizza", "price_per_unit": "-1", "quantity": 1}]
        with pytest.raises(ValidationError) as exc:
            self._load(_payload(items=items))
        assert "price_per_unit" in exc.value.messages["items"][0]

    def test_zero_quantity(self):
        items = [{"name": "Pizza", "price_per_unit": "100", "quantity": 0}]
        with pytest.raises(ValidationError) as exc:
            self._load(_payload(items=items))
        assert "quantity" in exc.value.messages["items"][0]

    def test_non_integer_quantity(self):
        items = [{"name": "Pizza", "price_per_unit": "100", "quantity": 1.5}]
        with pytest.raises(ValidationError) as exc:
            self._load(_payload(items=items))
        assert "quantity" in exc.value.messages["items"][0]

    def test_quantity_above_integer_column_rejected(self):
        items = [{"name": "Pizza", "price_per_unit": "100", "quantity": 10**20}]
        with pytest.raises(ValidationError) as exc:
            self._load(_payload(items=items))
        assert "quantity" in exc.value.messages["items"][0]

    def test_largest_quantity_accepted(self):
        items = [{"name": "Pizza", "price_per_unit": "1", "quantity": MAX_QUANTITY}]
        assert self._load(_payload(items=items))["items"][0]["quantity"] == MAX_QUANTITY

    def test_price_above_column_capacity_rejected(self):
        items = [{"name": "Pizza", "price_per_unit": "123456789012345678.91", "quantity": 1}]
        with pytest.raises(ValidationError) as exc:
            self._load(_payload(items=items))
        assert "price_per_unit" in exc.value.messages["items"][0]

    def test_split_quantity_above_integer_column_rejected(self):
        items = [{
            "name": "Rice",
            "price_per_unit": "100",
            "quantity": 1,
            "split": [{"external_name": "Charlie", "quantity": 10**20}],
        }]
        with pytest.raises(ValidationError) as exc:
            self._load(_payload(split_method="per_product", items=items))
        assert "quantity" in exc.value.messages["items"][0]["split"][0]

    def test_user_id_above_integer_column_rejected(self):
        with pytest.raises(ValidationError) as exc:
            self._load(_payload(participants=[{"user_id": 10**20}]))
        assert "user_id" in exc.value.messages["participants"][0]

    def test_participant_needs_an_identity(self):
        with pytest.raises(ValidationError) as exc:
            self._load(_payload(participants=[{}]))
        assert "external_name" in exc.value.messages["participants"][0]

    def test_participant_with_two_users_is_ambiguous(self):
        with pytest.raises(ValidationError) as exc:
            self._load(_payload(participants=[{"user_id": 1, "username": "bob"}]))
        assert exc.value.messages["participants"][0]["_schema"] == [ErrorCode.AMBIGUOUS_PARTICIPANT_REF]

    def test_registered_participant_may_carry_a_label(self):
        result = self._load(_payload(participants=[{"user_id": 1, "external_name": "Al"}]))
        assert result["participants"][0]["external_name"] == "Al"

    def test_split_entry_with_user_and_name_is_ambiguous(self):
        items = [{
            "name": "Rice",
            "price_per_unit": "100",
            "quantity": 1,
            "split": [{"user_id": 1, "external_name": "Al", "quantity": 1}],
        }]
        with pytest.raises(ValidationError) as exc:
            self._load(_payload(split_method="per_product", items=items))
        split_errors = exc.value.messages["items"][0]["split"][0]
        assert split_errors["_schema"] == [ErrorCode.AMBIGUOUS_PARTICIPANT_REF]

    def test_negative_split_quantity(self):
        items = [{
            "name": "Rice",
            "price_per_unit": "100",
            "quantity": 1,
            "split": [{"external_name": "Charlie", "quantity": -1}],
        }]
        with pytest.raises(ValidationError) as exc:
            self._load(_payload(split_method="per_product", items=items))
        assert "quantity" in exc.value.messages["items"][0]["split"][0]

    def test_split_lists_on_equal_bill(self):
        items = [{
            "name": "Pizza",
            "price_per_unit": "90000",
            "quantity": 1,
            "split": [{"external_name": "Charlie", "quantity": 1}],
        }]
        with pytest.raises(ValidationError) as exc:
            self._load(_payload(items=items))
        assert exc.value.messages["items"] == [ErrorCode.SPLITS_SENT_FOR_EQUAL_METHOD]

    def test_empty_split_list_on_equal_bill_is_fine(self):
        items = [{"name": "Pizza", "price_per_unit": "90000", "quantity": 1, "split": []}]
        assert self._load(_payload(items=items))["items"][0]["split"] == []


class TestPayBillSchema:

    def test_password_optional_at_schema_level(self):
        assert PayBillSchema().load({}) == {"password": None}

    def test_password_passed_through(self):
        assert PayBillSchema().load({"password": "Secret123"}) == {"password": "Secret123"}
