import tempfile
import unittest
from pathlib import Path

from engine.characters import CharacterStore, PrivilegedStore, clean_payload, normalize_character
from engine.db import connect, ensure_schema
from engine.errors import ConfigurationError, InvalidRequest
from helpers import make_catalog


class CleanPayloadTests(unittest.TestCase):
    def test_unknown_keys_are_dropped(self):
        out = clean_payload({"name": " Elira ", "user_id": "someone-else", "id": 9}, creating=True)
        self.assertEqual({"name": "Elira"}, out)

    def test_name_required_on_create(self):
        with self.assertRaises(InvalidRequest):
            clean_payload({"class_name": "Wizard"}, creating=True)
        with self.assertRaises(InvalidRequest):
            clean_payload({"name": "   "}, creating=False)

    def test_level_range(self):
        for level in (0, 21, "x", True):
            with self.subTest(level=level):
                with self.assertRaises(InvalidRequest):
                    clean_payload({"name": "A", "level": level}, creating=True)
        self.assertEqual(20, clean_payload({"level": "20"}, creating=False)["level"])

    def test_spells_known_entries(self):
        ok = [" Shield", {"name": "Fireball", "level": 3}, {"name": "Homebrew Bolt", "level": None}]
        self.assertEqual(ok, clean_payload({"spells_known": ok}, creating=False)["spells_known"])
        for entry in ({"name": "Shield", "level": "abc"}, {"name": "Shield", "level": {}}, {"name": "Shield", "level": 10},
                      {"name": "Shield", "level": True}, {"level": 1}, {"name": 5}, 42, None):
            with self.subTest(entry=entry):
                with self.assertRaises(InvalidRequest):
                    clean_payload({"spells_known": [entry]}, creating=False)

    def test_types(self):
        with self.assertRaises(InvalidRequest):
            clean_payload({"spell_slots": [1, 2]}, creating=False)
        with self.assertRaises(InvalidRequest):
            clean_payload({"spells_known": "Fireball"}, creating=False)
        with self.assertRaises(InvalidRequest):
            clean_payload({"character_data": "notes"}, creating=False)
        with self.assertRaises(InvalidRequest):
            clean_payload(["name"], creating=False)


class NormalizeCharacterTests(unittest.TestCase):
    def test_clamps_hp_and_slots(self):
        record = normalize_character(
            {
                "hp_max": 10,
                "hp_current": 25,
                "spell_slots": {"1": [9, 4], "2": [-1, 3], "10": [1, 1], "3": "bad"},
                "spells_known": ["Fireball", "Fireball"],
                "character_data": None,
            },
            make_catalog(),
        )
        self.assertEqual(10, record["hp_current"])
        self.assertEqual({"1": [4, 4], "2": [0, 3]}, record["spell_slots"])
        self.assertEqual([{"name": "Fireball", "level": 3}], record["spells_known"])
        self.assertEqual({}, record["character_data"])


class StoreTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.conn = connect(Path(self._tmp.name) / "chars.sqlite3")
        self.addCleanup(self.conn.close)
        ensure_schema(self.conn)
        self.catalog = make_catalog()
        self.alice = CharacterStore(self.conn, "alice", self.catalog)
        self.bob = CharacterStore(self.conn, "bob", self.catalog)


class CharacterStoreTests(StoreTestCase):
    def test_create_forces_owner(self):
        created = self.alice.create({"name": "Elira", "class_name": "Wizard", "user_id": "bob"})
        self.assertEqual("alice", created["user_id"])
        self.assertEqual([], self.bob.list_characters())
        self.assertEqual([created["id"]], [c["id"] for c in self.alice.list_characters()])

    def test_list_newest_first(self):
        first = self.alice.create({"name": "One"})
        second = self.alice.create({"name": "Two"})
        self.assertEqual([second["id"], first["id"]], [c["id"] for c in self.alice.list_characters()])

    def test_other_users_cannot_touch(self):
        created = self.alice.create({"name": "Elira"})
        self.assertIsNone(self.bob.get(created["id"]))
        self.assertIsNone(self.bob.update(created["id"], {"name": "Stolen"}))
        self.assertFalse(self.bob.delete(created["id"]))
        self.assertEqual("Elira", self.alice.get(created["id"])["name"])

    def test_update_is_partial(self):
        created = self.alice.create({"name": "Elira", "hp_max": 12, "hp_current": 12})
        updated = self.alice.update(created["id"], {"hp_current": 5, "character_data": {"notes": "hurt"}})
        self.assertEqual("Elira", updated["name"])
        self.assertEqual(5, updated["hp_current"])
        self.assertEqual({"notes": "hurt"}, updated["character_data"])

    def test_modify_without_changes_does_not_write(self):
        created = self.alice.create({"name": "Elira"})
        record = self.alice.modify(created["id"], lambda current: None)
        self.assertEqual(created["updated_at"], record["updated_at"])

    def test_modify_error_rolls_back(self):
        created = self.alice.create({"name": "Elira"})

        def compute(current):
            raise InvalidRequest("nope")

        with self.assertRaises(InvalidRequest):
            self.alice.modify(created["id"], compute)
        self.assertFalse(self.conn.in_transaction)
        self.assertEqual("Elira", self.alice.get(created["id"])["name"])

    def test_delete(self):
        created = self.alice.create({"name": "Elira"})
        self.assertTrue(self.alice.delete(created["id"]))
        self.assertIsNone(self.alice.get(created["id"]))


class ShareTokenTests(StoreTestCase):
    def setUp(self):
        super().setUp()
        self.privileged = PrivilegedStore(self.conn, "service-key", self.catalog)
        self.character = self.alice.create({"name": "Elira", "class_name": "Wizard"})

    def test_keeps_service_key(self):
        self.assertEqual("service-key", self.privileged.service_key)

    def test_requires_service_key(self):
        with self.assertRaises(ConfigurationError):
            PrivilegedStore(self.conn, None)

    def test_mint_and_read(self):
        minted = self.privileged.mint_share_token(self.character["id"], "alice", ttl_days=7)
        self.assertTrue(minted["share_token"])
        shared = self.privileged.find_by_share_token(minted["share_token"])
        self.assertEqual("Elira", shared["name"])
        self.assertNotIn("user_id", shared)
        self.assertNotIn("share_token", shared)

    def test_mint_checks_owner(self):
        self.assertIsNone(self.privileged.mint_share_token(self.character["id"], "bob"))
        self.assertIsNone(self.alice.get(self.character["id"])["share_token"])

    def test_expired_token(self):
        minted = self.privileged.mint_share_token(self.character["id"], "alice", ttl_days=-1)
        self.assertIsNone(self.privileged.find_by_share_token(minted["share_token"]))

    def test_revoke(self):
        minted = self.privileged.mint_share_token(self.character["id"], "alice")
        self.assertFalse(self.privileged.revoke_share_token(self.character["id"], "bob"))
        self.assertTrue(self.privileged.revoke_share_token(self.character["id"], "alice"))
        self.assertIsNone(self.privileged.find_by_share_token(minted["share_token"]))

    def test_remint_replaces_token(self):
        first = self.privileged.mint_share_token(self.character["id"], "alice")
        second = self.privileged.mint_share_token(self.character["id"], "alice")
        self.assertNotEqual(first["share_token"], second["share_token"])
        self.assertIsNone(self.privileged.find_by_share_token(first["share_token"]))


if __name__ == "__main__":
    unittest.main()
