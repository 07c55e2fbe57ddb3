"""
schemas/bill_schema.py — Marshmallow schemas for bill and payment endpoints.

Validation responsibility:
  - This file (400, request shape):
      - field types, lengths, enum values, price precision (max 2 dp)
      - split lists sent for an equal bill (SPLITS_SENT_FOR_EQUAL_METHOD)
      - every participant / split entry names exactly one identity
      - price_per_unit >= 0, quantity >= 1, split quantity >= 0
      - prices and quantities fit their columns (MAX_AMOUNT, MAX_QUANTITY)
  - services/bill_builder.py (422, bill rules):
      - positive price (unless zero-priced items are enabled)
      - duplicate participants, unknown split participants
      - split quantities sum to the item quantity, single-unit splits
      - a bill total that does not fit the amount column
  - services/bill_service.py (422, DB lookups):
      - PARTICIPANT_USER_NOT_FOUND for user_id / username references

Unknown keys are dropped (EXCLUDE). Clients that send total_amount,
amount_due or status have those values ignored: they are always derived
server-side.

IMPORTANT: Inherits from marshmallow.Schema directly — never a Flask-bound schema.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import (
    EXCLUDE,
    Schema,
    ValidationError,
    fields,
    validate,
    validates_schema,
)

from backend.app.errors import ErrorCode
from backend.app.models.bill import MAX_AMOUNT, MAX_QUANTITY, SplitMethod


def _validate_price(value: Decimal) -> None:
    """price_per_unit: non-negative, at most MAX_AMOUNT, at most 2 decimal places."""
    if value < Decimal("0"):
        raise ValidationError("Price must not be negative.")
    if value > MAX_AMOUNT:
        raise ValidationError(f"Price must not exceed {MAX_AMOUNT}.")
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_non_empty_after_trim(value: str) -> None:
    """validate.Length(min=1) alone accepts '   '; strip first."""
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _check_single_identity(data: dict, *, allow_label: bool) -> None:
    """
    A participant reference names a registered user (user_id or username) or
    an external person (external_name), never two users at once.

    allow_label: participants may carry external_name as a display label next
                 to a user reference; split entries may not.
    """
    user_keys = [k for k in ("user_id", "username") if data.get(k) is not None]
    has_name = data.get("external_name") is not None

    if len(user_keys) > 1 or (user_keys and has_name and not allow_label):
        raise ValidationError(
            {"_schema": [ErrorCode.AMBIGUOUS_PARTICIPANT_REF]}
        )
    if not user_keys and not has_name:
        raise ValidationError(
            {"external_name": ["Provide external_name, user_id or username."]}
        )


_NAME_FIELD = dict(
    validate=[
        validate.Length(min=1, max=100, error="Name must be between 1 and 100 characters."),
        _validate_non_empty_after_trim,
    ],
)


class ParticipantInputSchema(Schema):
    """
    One participant. Registered: user_id or username (external_name is then
    an optional display label). External: external_name only.
    """

    class Meta:
        unknown = EXCLUDE

    external_name = fields.Str(load_default=None, **_NAME_FIELD)
    user_id = fields.Int(
        load_default=None,
        strict=True,
        validate=validate.Range(
            min=1,
            max=MAX_QUANTITY,
            error="user_id must be a positive integer.",
        ),
    )
    username = fields.Str(load_default=None)

    @validates_schema
    def validate_identity(self, data: dict, **kwargs) -> None:
        _check_single_identity(data, allow_label=True)


class SplitEntrySchema(Schema):
    """One entry of an item's split list: a participant reference plus a quantity."""

    class Meta:
        unknown = EXCLUDE

    external_name = fields.Str(load_default=None, **_NAME_FIELD)
    user_id = fields.Int(
        load_default=None,
        strict=True,
        validate=validate.Range(
            min=1,
            max=MAX_QUANTITY,
            error="user_id must be a positive integer.",
        ),
    )
    username = fields.Str(load_default=None)
    quantity = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(
            min=0,
            max=MAX_QUANTITY,
            error="Split quantity must be between {min} and {max}.",
        ),
    )

    @validates_schema
    def validate_identity(self, data: dict, **kwargs) -> None:
        _check_single_identity(data, allow_label=False)


class ItemInputSchema(Schema):
    """One priced line item."""

    class Meta:
        unknown = EXCLUDE

    name = fields.Str(
        required=True,
        validate=[
            validate.Length(min=1, max=255, error="Item name must be between 1 and 255 characters."),
            _validate_non_empty_after_trim,
        ],
    )
    price_per_unit = fields.Decimal(required=True, validate=_validate_price)
    quantity = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(
            min=1,
            max=MAX_QUANTITY,
            error="Quantity must be between {min} and {max}.",
        ),
    )
    split = fields.List(fields.Nested(SplitEntrySchema), load_default=None)


class CreateBillSchema(Schema):
    """
    POST /bills and POST /bills/preview

    split_method='equal'       → items must not carry split lists
                                 (SPLITS_SENT_FOR_EQUAL_METHOD, checked here).
    split_method='per_product' → items may carry split lists; an item without
                                 one is shared equally by all participants.
    """

    class Meta:
        unknown = EXCLUDE

    bill_name = fields.Str(
        required=True,
        validate=[
            validate.Length(min=1, max=255, error="Bill name must be between 1 and 255 characters."),
            _validate_non_empty_after_trim,
        ],
    )
    split_method = fields.Enum(
        SplitMethod,
        required=True,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_METHOD},
    )
    participants = fields.List(
        fields.Nested(ParticipantInputSchema),
        required=True,
        validate=validate.Length(min=1, error="At least one participant is required."),
    )
    items = fields.List(
        fields.Nested(ItemInputSchema),
        required=True,
        validate=validate.Length(min=1, error="At least one item is required."),
    )

    @validates_schema
    def validate_split_coherence(self, data: dict, **kwargs) -> None:
        if data.get("split_method") != SplitMethod.EQUAL:
            return
        for item in data.get("items") or []:
            if item.get("split"):
                raise ValidationError(
                    {"items": [ErrorCode.SPLITS_SENT_FOR_EQUAL_METHOD]}
                )


class PayBillSchema(Schema):
    """
    POST /bills/:id/pay

    password: the payer's account password, confirmed before the balance is
              debited. Required unless REQUIRE_PAYMENT_PASSWORD is off. The
              service decides; the schema only types it.
    """

    class Meta:
        unknown = EXCLUDE

    password = fields.Str(load_default=None, load_only=True)
