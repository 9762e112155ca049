import asyncio
import random
import unittest
from datetime import datetime, timezone

from db_support import USER_ID, sqlite_database
from inventory.core.errors import NotFoundError, StorageError
from inventory.models.device_change_log import DeviceChange
from inventory.schemas.device import DeviceSubmission
from inventory.schemas.diff import DeviceDiff, KeyInfoEdit
from inventory.services import entity_store as store
from inventory.services.change_log import list_changes
from inventory.services.device_upsert import upsert_device


def _submission(location_id, value):
    return DeviceSubmission(
        location_id=location_id,
        column_data=[{"column_definition_id": 5, "data_value": value}],
    )


class ListChangesTests(unittest.TestCase):
    def test_newest_first_with_display_name(self):
        async def _scenario():
            async with sqlite_database() as factory:
                async with factory() as db:
                    device_id = await upsert_device(db, None, _submission(1, "x"), USER_ID, rng=random.Random(5))
                async with factory() as db:
                    await upsert_device(db, device_id, _submission(2, "x"), None)
                async with factory() as db:
                    return await list_changes(db, device_id)

        entries = asyncio.run(_scenario())

        self.assertEqual(len(entries), 2)
        newest, oldest = entries
        self.assertGreater(newest.id, oldest.id)
        self.assertIsNone(newest.user_id)
        self.assertIsNone(newest.user_display_name)
        self.assertEqual(oldest.user_display_name, "Jane Doe")
        self.assertEqual(newest.diff.device_key_info.operation, "edit")
        self.assertEqual(oldest.diff.device_key_info.operation, "add")

        item = newest.to_dict()
        self.assertEqual(item["change"], {"deviceKeyInfo": {"operation": "edit", "locationId": 2}})
        self.assertFalse(item["doneAutomatically"])
        self.assertIn("timestamp", item)

    def test_unknown_device(self):
        async def _scenario():
            async with sqlite_database() as factory:
                async with factory() as db:
                    await list_changes(db, "424242")

        with self.assertRaises(NotFoundError):
            asyncio.run(_scenario())

    def test_unreadable_row_is_a_storage_error(self):
        async def _scenario():
            async with sqlite_database() as factory:
                async with factory() as db:
                    device_id = await upsert_device(db, None, _submission(1, "x"), USER_ID)
                async with factory() as db:
                    key_info = await store.get_device_key_info(db, device_id)
                    db.add(DeviceChange(
                        device_key_info_id=key_info.id,
                        timestamp=datetime.now(timezone.utc),
                        done_automatically=True,
                        change='{"deviceKeyInfo": {"operation": "teleport"}}',
                    ))
                    await db.commit()
                async with factory() as db:
                    await list_changes(db, device_id)

        with self.assertRaises(StorageError):
            asyncio.run(_scenario())

    def test_automatic_changes_do_not_count_as_last_update(self):
        async def _scenario():
            async with sqlite_database() as factory:
                async with factory() as db:
                    device_id = await upsert_device(db, None, _submission(1, "x"), USER_ID)
                async with factory() as db:
                    key_info = await store.get_device_key_info(db, device_id)
                    before = await store.get_last_updated(db, key_info.id)
                    await store.insert_change_log(
                        db,
                        key_info.id,
                        DeviceDiff(device_key_info=KeyInfoEdit(location_id=2)),
                        None,
                        done_automatically=True,
                    )
                    await db.commit()
                async with factory() as db:
                    after = await store.get_last_updated(db, key_info.id)
                return before, after

        before, after = asyncio.run(_scenario())

        self.assertIsNotNone(before)
        self.assertEqual(before, after)


if __name__ == "__main__":
    unittest.main()
