"""
Unit tests for the contact form service and the admin inbox.
"""
import pytest

from domain.errors import NotFoundError, ValidationError
from services import contact_service


pytestmark = pytest.mark.unit


async def _submit(db, **overrides):
    data = {"name": "Ravi", "email": "Ravi@Example.com", "subject": "Sizing", "message": "Do UK 9 run large?"}
    return await contact_service.submit_message(db, **{**data, **overrides})


@pytest.mark.asyncio
async def test_submit_normalizes(db_session):
    msg = await _submit(db_session, name="  Ravi  ")
    assert msg.name == "Ravi"
    assert msg.email == "ravi@example.com"
    assert msg.status == "new"
    assert msg.source == "website"


@pytest.mark.asyncio
@pytest.mark.parametrize("field,value", [("email", "not-an-email"), ("message", "   "), ("name", "")])
async def test_submit_rejects(db_session, field, value):
    with pytest.raises(ValidationError) as exc:
        await _submit(db_session, **{field: value})
    assert exc.value.details["field"] == field


@pytest.mark.asyncio
async def test_inbox_filter_and_unread(db_session):
    first = await _submit(db_session)
    await _submit(db_session, subject="Returns")

    await contact_service.set_status(db_session, message_id=first.id, status="resolved")

    new, total = await contact_service.list_messages(db_session, status="new")
    assert total == 1
    assert new[0].subject == "Returns"
    assert await contact_service.count_unread(db_session) == 1


@pytest.mark.asyncio
async def test_unknown_status(db_session):
    msg = await _submit(db_session)
    with pytest.raises(ValidationError):
        await contact_service.set_status(db_session, message_id=msg.id, status="spam")


@pytest.mark.asyncio
async def test_missing_message(db_session):
    with pytest.raises(NotFoundError):
        await contact_service.set_status(db_session, message_id=404, status="read")
