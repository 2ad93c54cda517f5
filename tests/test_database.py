"""Tests for the shared row helpers."""

from unittest.mock import MagicMock

import pytest

from ajira.database import delete_row, insert_row, update_row


@pytest.mark.asyncio
async def test_insert_row_stamps_id_and_timestamps():
    db = MagicMock()
    db.table.return_value.insert.side_effect = lambda row: MagicMock(
        execute=MagicMock(return_value=MagicMock(data=[row]))
    )

    row = await insert_row(db, "tags", {"name": "Safari", "slug": "safari"})

    assert row["slug"] == "safari"
    assert len(row["id"]) == 32
    assert row["created_at"] == row["updated_at"]
    db.table.assert_called_with("tags")


@pytest.mark.asyncio
async def test_update_row_bumps_updated_at():
    db = MagicMock()
    update = db.table.return_value.update
    update.return_value.eq.return_value.execute.return_value = MagicMock(data=[])

    assert await update_row(db, "hotels", "h1", {"name": "Serena"}) is None

    sent = update.call_args.args[0]
    assert sent["name"] == "Serena"
    assert "updated_at" in sent
    update.return_value.eq.assert_called_once_with("id", "h1")


@pytest.mark.asyncio
async def test_delete_row_by_id():
    db = MagicMock()
    await delete_row(db, "tags", "t1")
    db.table.return_value.delete.return_value.eq.assert_called_once_with("id", "t1")
