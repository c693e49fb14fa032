"""Tests for client list selection/filter state and the theme manager."""
import sys
import os
import unittest
from unittest.mock import MagicMock

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from loandesk.database import DatabaseManager
from loandesk.theme import THEME_DARK, THEME_LIGHT, ThemeManager
from loandesk.ui_state_manager import UIStateManager


class FakeCard:
    """Stands in for a ClientCard widget."""

    def __init__(self, client_id, name, cpf="", phone=""):
        self.client_id = client_id
        self.name = name
        self.cpf = cpf
        self.phone = phone
        self.selected = False
        self.visible = True

    def set_selected(self, selected):
        self.selected = selected

    def setVisible(self, visible):
        self.visible = visible

    def isVisible(self):
        return self.visible


class TestUIStateManager(unittest.TestCase):

    def setUp(self):
        self.callback = MagicMock()
        self.state = UIStateManager(on_selection_changed=self.callback)
        self.ana = FakeCard(1, "Ana Souza", "123.456.789-01", "(11) 98765-4321")
        self.bruno = FakeCard(2, "Bruno Lima", "987.654.321-00", "(21) 91234-5678")
        self.state.set_cards([self.ana, self.bruno])

    def test_select_switches_cards(self):
        self.state.select(self.ana)
        self.state.select(self.bruno)

        self.assertFalse(self.ana.selected)
        self.assertTrue(self.bruno.selected)
        self.assertEqual(self.state.get_selected_id(), 2)
        self.assertEqual(self.state.get_selected_name(), "Bruno Lima")
        self.callback.assert_called_with(self.bruno)

    def test_clear_selection(self):
        self.state.select(self.ana)
        self.state.clear_selection()
        self.assertFalse(self.state.has_selection())
        self.assertIsNone(self.state.get_selected_id())

    def test_select_by_id(self):
        self.assertTrue(self.state.select_by_id(2))
        self.assertIs(self.state.selected_card, self.bruno)
        self.assertFalse(self.state.select_by_id(99))

    def test_matches(self):
        self.assertTrue(UIStateManager.matches(self.ana, "souza"))
        self.assertTrue(UIStateManager.matches(self.ana, "12345678901"))
        self.assertTrue(UIStateManager.matches(self.ana, "98765-43"))
        self.assertTrue(UIStateManager.matches(self.ana, "  "))
        self.assertFalse(UIStateManager.matches(self.ana, "bruno"))
        self.assertFalse(UIStateManager.matches(self.ana, "555"))

    def test_filter_hides_cards(self):
        self.state.apply_filter("91234")
        self.assertEqual(self.state.get_visible_ids(), [2])

        self.state.apply_filter("")
        self.assertEqual(self.state.get_visible_ids(), [1, 2])

    def test_refresh_filter_after_reload(self):
        self.state.apply_filter("ana")
        carla = FakeCard(3, "Carla Dias")
        self.state.set_cards([self.ana, carla])
        self.state.refresh_filter()
        self.assertEqual(self.state.get_visible_cards(), [self.ana])


class TestThemeManager(unittest.TestCase):

    def setUp(self):
        self.db = DatabaseManager(":memory:")

    def tearDown(self):
        self.db.close()

    def test_defaults_to_light(self):
        self.assertFalse(ThemeManager(self.db).is_dark)

    def test_toggle_is_persisted(self):
        manager = ThemeManager(self.db)
        self.assertEqual(manager.toggle_theme(), THEME_DARK)
        self.assertTrue(ThemeManager(self.db).is_dark)
        self.assertEqual(manager.toggle_theme(), THEME_LIGHT)

    def test_urgency_colors(self):
        manager = ThemeManager(self.db)
        self.assertEqual(manager.urgency_colors("overdue"),
                         (manager.get_color('danger'), manager.get_color('danger_bg')))
        self.assertEqual(manager.urgency_colors("unknown"),
                         (manager.get_color('info'), manager.get_color('info_bg')))

    def test_missing_color_key(self):
        self.assertEqual(ThemeManager(self.db).get_color('no_such_key'), "#ff0000")


if __name__ == "__main__":
    unittest.main(verbosity=2)
