"""
Unit tests for bill_service: user-reference resolution and access control.

DB-free: the session is a MagicMock, users and bills are SimpleNamespaces.
"""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from backend.app.errors import AuthorizationError, BillValidationError, ErrorCode, NotFoundError
from backend.app.models.bill import SplitMethod
from backend.app.services import bill_service
from backend.app.services.bill_builder import ExternalRef, RegisteredRef


def _participant(user_id=None, username=None, external_name=None) -> dict:
    return {"user_id": user_id, "username": username, "external_name": external_name}


def _data(participants, items, split_method=SplitMethod.EQUAL) -> dict:
    return {
        "bill_name": "Dinner",
        "split_method": split_method,
        "participants": participants,
        "items": items,
    }


def _item(price="90000", quantity=1, split=None) -> dict:
    return {"name": "Pizza", "price_per_unit": Decimal(price), "quantity": quantity, "split": split}


# ── Reference resolution ───────────────────────────────────────────────────

def test_preview_resolves_username_and_defaults_label():
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.return_value = SimpleNamespace(id=5, username="bob")

    computed = bill_service.preview_bill(
        caller_id=1,
        data=_data(
            [_participant(username="bob"), _participant(external_name="Charlie")],
            [_item()],
        ),
        session=session,
    )

    assert [p.ref for p in computed.participants] == [RegisteredRef(5), ExternalRef("Charlie")]
    assert [p.display_name for p in computed.participants] == ["bob", "Charlie"]
    assert [p.amount_due for p in computed.participants] == [Decimal("45000"), Decimal("45000")]
    session.add.assert_not_called()


def test_explicit_label_wins_over_username():
    session = MagicMock()
    session.get.return_value = SimpleNamespace(id=5, username="bob")

    computed = bill_service.preview_bill(
        caller_id=1,
        data=_data([_participant(user_id=5, external_name="Bobby")], [_item()]),
        session=session,
    )

    assert computed.participants[0].display_name == "Bobby"
    assert computed.participants[0].ref == RegisteredRef(5)


def test_unknown_user_id_rejected():
    session = MagicMock()
    session.get.return_value = None

    with pytest.raises(BillValidationError) as exc_info:
        bill_service.preview_bill(
            caller_id=1,
            data=_data([_participant(user_id=404)], [_item()]),
            session=session,
        )

    err = exc_info.value
    assert err.code == ErrorCode.PARTICIPANT_USER_NOT_FOUND
    assert err.http_status == 422
    assert err.field == "participants[0]"


def test_unknown_username_in_split_rejected():
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.return_value = None

    with pytest.raises(BillValidationError) as exc_info:
        bill_service.preview_bill(
            caller_id=1,
            data=_data(
                [_participant(external_name="Charlie")],
                [_item(quantity=1, split=[{**_participant(username="ghost"), "quantity": 1}])],
                split_method=SplitMethod.PER_PRODUCT,
            ),
            session=session,
        )

    assert exc_info.value.code == ErrorCode.PARTICIPANT_USER_NOT_FOUND
    assert exc_info.value.field == "items[0].split"


def test_username_looked_up_once():
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.return_value = SimpleNamespace(id=5, username="bob")

    computed = bill_service.preview_bill(
        caller_id=1,
        data=_data(
            [_participant(username="bob"), _participant(external_name="Charlie")],
            [_item(quantity=2, split=[
                {**_participant(username="bob"), "quantity": 2},
                {**_participant(external_name="Charlie"), "quantity": 0},
            ])],
            split_method=SplitMethod.PER_PRODUCT,
        ),
        session=session,
    )

    assert session.execute.call_count == 1
    assert [p.amount_due for p in computed.participants] == [Decimal("180000"), Decimal("0")]


# ── Access control ─────────────────────────────────────────────────────────

def _bill(creator=1, participant_user_ids=(2, None)):
    return SimpleNamespace(
        id=10,
        created_by_user_id=creator,
        participants=[SimpleNamespace(user_id=uid) for uid in participant_user_ids],
    )


def test_get_bill_not_found():
    session = MagicMock()
    session.get.return_value = None

    with pytest.raises(NotFoundError) as exc_info:
        bill_service.get_bill(bill_id=10, caller_id=1, session=session)

    assert exc_info.value.code == ErrorCode.BILL_NOT_FOUND
    assert exc_info.value.http_status == 404


@pytest.mark.parametrize("caller_id", [1, 2])
def test_get_bill_allows_creator_and_registered_participant(caller_id):
    session = MagicMock()
    bill = _bill()
    session.get.return_value = bill

    assert bill_service.get_bill(bill_id=10, caller_id=caller_id, session=session) is bill


def test_get_bill_forbids_outsider():
    session = MagicMock()
    session.get.return_value = _bill()

    with pytest.raises(AuthorizationError) as exc_info:
        bill_service.get_bill(bill_id=10, caller_id=3, session=session)

    assert exc_info.value.code == ErrorCode.FORBIDDEN
    assert exc_info.value.http_status == 403


def test_list_bills_returns_rows():
    session = MagicMock()
    rows = [_bill(), _bill()]
    session.execute.return_value.scalars.return_value.all.return_value = rows

    assert bill_service.list_bills(caller_id=1, session=session) == rows
