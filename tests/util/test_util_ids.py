import unittest
import uuid

from campussync.util.ids import new_handle_id, new_uuid, ref_counter


class TestUtilIds(unittest.TestCase):
    def test_new_uuid_is_valid_uuid4(self) -> None:
        value = new_uuid()
        parsed = uuid.UUID(value)
        self.assertEqual(str(parsed), value)
        self.assertEqual(parsed.version, 4)

    def test_new_handle_id_is_valid_uuid4(self) -> None:
        parsed = uuid.UUID(new_handle_id())
        self.assertEqual(parsed.version, 4)

    def test_ids_are_unique(self) -> None:
        values = {new_uuid(), new_uuid(), new_uuid()}
        self.assertEqual(len(values), 3)

    def test_ref_counter_yields_increasing_strings(self) -> None:
        refs = ref_counter()
        self.assertEqual([next(refs), next(refs), next(refs)], ["1", "2", "3"])


if __name__ == "__main__":
    unittest.main()
