import json
import unittest

from inventory.schemas.diff import DeviceDiff
from inventory.services.diff_engine import (
    AttachmentState,
    ColumnValue,
    ComponentState,
    DeviceState,
    DiffInputError,
    DuplicateKeyError,
    compute_diff,
    reconcile_keyed,
)


def _state(**overrides):
    base = {
        "location_id": 1,
        "column_data": [ColumnValue(5, "x"), ColumnValue(6, "ThinkPad")],
        "components": [ComponentState("001", "RAM"), ComponentState("002", "SSD")],
        "attachments": [AttachmentState("abcd1234", "invoice", "invoice.pdf")],
    }
    base.update(overrides)
    return DeviceState(**base)


class ReconcileKeyedTests(unittest.TestCase):
    def test_dispatches_by_side(self):
        result = reconcile_keyed(
            [("a", 1), ("b", 2)],
            lambda item: item[0],
            [("b", 3), ("c", 4)],
            lambda item: item[0],
            on_both=lambda before, after: [("both", before[0])],
            on_added=lambda after: [("added", after[0])],
            on_removed=lambda before: [("removed", before[0])],
        )
        self.assertEqual(result, [("removed", "a"), ("both", "b"), ("added", "c")])

    def test_duplicate_key_in_before(self):
        with self.assertRaises(DuplicateKeyError):
            reconcile_keyed(
                [1, 1], lambda item: item, [], lambda item: item,
                on_both=lambda b, a: [], on_added=lambda a: [], on_removed=lambda b: [],
            )

    def test_duplicate_key_in_after(self):
        with self.assertRaises(DuplicateKeyError):
            reconcile_keyed(
                [], lambda item: item, [2, 2], lambda item: item,
                on_both=lambda b, a: [], on_added=lambda a: [], on_removed=lambda b: [],
            )


class ComputeDiffTests(unittest.TestCase):
    def test_identical_states_have_no_diff(self):
        self.assertIsNone(compute_diff(_state(), _state()))

    def test_reordering_is_not_a_change(self):
        before = _state()
        after = _state(
            column_data=list(reversed(before.column_data)),
            components=list(reversed(before.components)),
        )
        self.assertIsNone(compute_diff(before, after))

    def test_reordered_attachments_are_not_a_change(self):
        attachments = [
            AttachmentState("abcd1234", "invoice", "invoice.pdf"),
            AttachmentState("zz./9xyQ", "photo", "front.jpg"),
            AttachmentState("Qw3.rT/u", "manual", "manual.pdf", deleted=True),
        ]
        before = _state(attachments=attachments)
        after = _state(attachments=list(reversed(attachments)))
        self.assertIsNone(compute_diff(before, after))

    def test_empty_new_device_has_no_diff(self):
        self.assertIsNone(compute_diff(None, DeviceState()))

    def test_new_device_reports_everything_as_added(self):
        diff = compute_diff(None, _state(components=[], attachments=[], column_data=[ColumnValue(5, "x")]))

        self.assertEqual(
            diff.to_payload(),
            {
                "deviceKeyInfo": {"operation": "add", "locationId": 1},
                "deviceData": [{"columnDefinitionId": 5, "dataValue": "x"}],
            },
        )

    def test_location_only_change_serializes_without_other_categories(self):
        diff = compute_diff(_state(), _state(location_id=2))

        self.assertEqual(json.loads(diff.to_json()), {"deviceKeyInfo": {"operation": "edit", "locationId": 2}})

    def test_removed_column_keeps_value(self):
        before = _state()
        after = _state(column_data=[ColumnValue(5, "x")])
        self.assertIsNone(compute_diff(before, after))

    def test_changed_column(self):
        diff = compute_diff(_state(), _state(column_data=[ColumnValue(5, "y"), ColumnValue(6, "ThinkPad")]))
        self.assertEqual(diff.to_payload(), {"deviceData": [{"columnDefinitionId": 5, "dataValue": "y"}]})

    def test_component_add_edit_delete(self):
        after = _state(components=[ComponentState("001", "RAM 16G"), ComponentState("003", "GPU")])

        diff = compute_diff(_state(), after)

        self.assertEqual(
            diff.to_payload()["deviceComponents"],
            [
                {"operation": "edit", "componentId": "001", "componentType": "RAM 16G"},
                {"operation": "delete", "componentId": "002"},
                {"operation": "add", "componentId": "003", "componentType": "GPU"},
            ],
        )

    def test_component_explicit_delete_and_restore(self):
        before = _state(components=[ComponentState("001", "RAM"), ComponentState("002", "SSD", deleted=True)])
        after = _state(components=[ComponentState("001", "RAM", deleted=True), ComponentState("002", "NVMe")])

        diff = compute_diff(before, after)

        self.assertEqual(
            diff.to_payload()["deviceComponents"],
            [
                {"operation": "delete", "componentId": "001"},
                {"operation": "restore", "componentId": "002"},
                {"operation": "edit", "componentId": "002", "componentType": "NVMe"},
            ],
        )

    def test_already_deleted_component_is_quiet(self):
        before = _state(components=[ComponentState("001", "RAM", deleted=True)])
        self.assertIsNone(compute_diff(before, _state(components=[])))
        self.assertIsNone(
            compute_diff(before, _state(components=[ComponentState("001", "RAM", deleted=True)]))
        )

    def test_new_component_marked_deleted_is_rejected(self):
        with self.assertRaises(DiffInputError):
            compute_diff(_state(components=[]), _state(components=[ComponentState("009", "RAM", deleted=True)]))

    def test_attachment_description_edit_and_restore(self):
        before = _state(attachments=[AttachmentState("abcd1234", "invoice", "invoice.pdf", deleted=True)])
        after = _state(attachments=[AttachmentState("abcd1234", "receipt", "invoice.pdf")])

        diff = compute_diff(before, after)

        self.assertEqual(
            diff.to_payload()["deviceAttachments"],
            [
                {"operation": "restore", "attachmentId": "abcd1234"},
                {"operation": "edit", "attachmentId": "abcd1234", "description": "receipt"},
            ],
        )

    def test_attachment_added_and_removed(self):
        after = _state(attachments=[AttachmentState("zz./9xyQ", "photo", "front.jpg")])

        diff = compute_diff(_state(), after)

        self.assertEqual(
            diff.to_payload()["deviceAttachments"],
            [
                {"operation": "delete", "attachmentId": "abcd1234"},
                {"operation": "add", "attachmentId": "zz./9xyQ", "description": "photo", "fileName": "front.jpg"},
            ],
        )

    def test_duplicate_component_ids_are_rejected(self):
        after = _state(components=[ComponentState("001", "RAM"), ComponentState("001", "SSD")])
        with self.assertRaises(DuplicateKeyError):
            compute_diff(_state(), after)


class DiffFormatTests(unittest.TestCase):
    def test_historical_row_parses(self):
        raw = (
            '{"deviceKeyInfo":{"operation":"delete"},'
            '"deviceComponents":[{"operation":"add","componentId":"001","componentType":"RAM"}]}'
        )

        diff = DeviceDiff.from_json(raw)

        self.assertEqual(diff.device_key_info.operation, "delete")
        self.assertEqual(diff.device_components[0].component_type, "RAM")
        self.assertIsNone(diff.device_data)
        self.assertEqual(json.loads(diff.to_json()), json.loads(raw))


if __name__ == "__main__":
    unittest.main()
