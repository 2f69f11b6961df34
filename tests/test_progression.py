import unittest

from engine.calc import (
    apply_progression,
    derive_progression,
    features_at,
    hit_die_value,
    hp_max,
    progression_table,
    proficiency_bonus,
    spell_slots_for,
)
from engine.config import DEFAULT_DATA_DIR
from engine.catalog import load_catalog
from helpers import make_catalog


class HitPointsTests(unittest.TestCase):
    def test_hit_die_value(self):
        self.assertEqual(8, hit_die_value("d8"))
        self.assertEqual(12, hit_die_value("D12"))
        self.assertEqual(0, hit_die_value("none"))

    def test_level_1_is_max_die_plus_con(self):
        self.assertEqual(8, hp_max("d6", 1))
        self.assertEqual(10, hp_max("d8", 1))

    def test_cleric_5_has_38_hp(self):
        self.assertEqual(38, hp_max("d8", 5))

    def test_other_dice(self):
        self.assertEqual(32, hp_max("d6", 5))
        self.assertEqual(28, hp_max("d10", 3))
        self.assertEqual(185, hp_max("d12", 20))

    def test_level_is_clamped(self):
        self.assertEqual(hp_max("d8", 20), hp_max("d8", 99))
        self.assertEqual(hp_max("d8", 1), hp_max("d8", 0))


class ProficiencyBonusTests(unittest.TestCase):
    def test_bonus_by_level(self):
        expected = {1: 2, 4: 2, 5: 3, 8: 3, 9: 4, 12: 4, 13: 5, 16: 5, 17: 6, 20: 6}
        for level, bonus in expected.items():
            with self.subTest(level=level):
                self.assertEqual(bonus, proficiency_bonus(level))


class SpellSlotTableTests(unittest.TestCase):
    def setUp(self):
        self.catalog = make_catalog()

    def test_wizard_5_slots(self):
        wizard = self.catalog.class_by_name("Wizard")
        self.assertEqual({"1": [4, 4], "2": [3, 3], "3": [2, 2]}, spell_slots_for(wizard, 5))

    def test_wizard_1_omits_zero_levels(self):
        wizard = self.catalog.class_by_name("Wizard")
        self.assertEqual({"1": [2, 2]}, spell_slots_for(wizard, 1))

    def test_wizard_20_has_all_levels(self):
        slots = spell_slots_for(self.catalog.class_by_name("Wizard"), 20)
        self.assertEqual([str(i) for i in range(1, 10)], sorted(slots, key=int))
        self.assertEqual([1, 1], slots["9"])

    def test_non_caster_has_no_slots(self):
        self.assertEqual({}, spell_slots_for(self.catalog.class_by_name("Fighter"), 20))


class ApplyProgressionTests(unittest.TestCase):
    def setUp(self):
        self.catalog = make_catalog()

    def test_recompute_heals_and_refills(self):
        character = {
            "class_name": "Wizard",
            "level": 5,
            "hp_current": 3,
            "hp_max": 10,
            "spell_slots": {"1": [0, 4]},
        }
        self.assertTrue(apply_progression(character, self.catalog))
        self.assertEqual(32, character["hp_max"])
        self.assertEqual(32, character["hp_current"])
        self.assertEqual({"1": [4, 4], "2": [3, 3], "3": [2, 2]}, character["spell_slots"])

    def test_unknown_class_leaves_character_alone(self):
        character = {"class_name": "Artificer", "level": 3, "hp_current": 7, "hp_max": 9, "spell_slots": {}}
        before = dict(character)
        self.assertFalse(apply_progression(character, self.catalog))
        self.assertEqual(before, character)

    def test_class_name_match_is_exact(self):
        self.assertIsNone(derive_progression(self.catalog, "wizard", 3))
        self.assertEqual(20, derive_progression(self.catalog, "Wizard", 3).hp_max)

    def test_fighter_progression(self):
        progression = derive_progression(self.catalog, "Fighter", 5)
        self.assertEqual(44, progression.hp_max)
        self.assertEqual({}, progression.spell_slots)
        self.assertEqual(3, progression.proficiency_bonus)


class ClassTableTests(unittest.TestCase):
    def setUp(self):
        self.wizard = make_catalog().class_by_name("Wizard")

    def test_features_up_to_level(self):
        self.assertEqual(["Spellcasting", "Arcane Recovery"], [f.name for f in features_at(self.wizard, 1)])
        self.assertEqual(3, len(features_at(self.wizard, 2)))

    def test_progression_table_has_twenty_rows(self):
        rows = progression_table(self.wizard)
        self.assertEqual(20, len(rows))
        self.assertEqual({"level": 5, "proficiency_bonus": 3, "cantrips": 4}, {k: rows[4][k] for k in ("level", "proficiency_bonus", "cantrips")})
        self.assertEqual(2, rows[4]["spell_3"])
        self.assertEqual(["Arcane Tradition"], rows[1]["features"])


class BundledDataTests(unittest.TestCase):
    def setUp(self):
        self.catalog = load_catalog(DEFAULT_DATA_DIR / "classes.json", DEFAULT_DATA_DIR / "spells.json")

    def test_cleric_5(self):
        progression = derive_progression(self.catalog, "Cleric", 5)
        self.assertEqual(38, progression.hp_max)
        self.assertEqual({"1": [4, 4], "2": [3, 3], "3": [2, 2]}, progression.spell_slots)

    def test_paladin_is_half_caster(self):
        self.assertEqual({}, derive_progression(self.catalog, "Paladin", 1).spell_slots)
        self.assertEqual({"1": [4, 4], "2": [2, 2]}, derive_progression(self.catalog, "Paladin", 5).spell_slots)


if __name__ == "__main__":
    unittest.main()
