"""UI state for the client list.

Keeps track of the selected client card and the search filter so the
clients view and its action controller agree on what is selected.
"""
from typing import Optional, List, Any, Callable

from loandesk.formatters import only_digits


class UIStateManager:
    """Selection and filter state for ClientCard widgets.

    Attributes:
        selected_card: Currently selected ClientCard.
        card_widgets: All ClientCard widgets, in display order.
        filter_text: Current search text.
        on_selection_changed: Callback when selection changes.
    """

    def __init__(self, on_selection_changed: Callable[[Any], None] = None):
        self._selected_card = None
        self._card_widgets: List[Any] = []
        self._filter_text: str = ""
        self.on_selection_changed = on_selection_changed

    @property
    def selected_card(self):
        return self._selected_card

    @property
    def card_widgets(self) -> List[Any]:
        return self._card_widgets

    @property
    def filter_text(self) -> str:
        return self._filter_text

    def has_selection(self) -> bool:
        return self._selected_card is not None

    def get_selected_id(self) -> Optional[int]:
        """ID of the selected client, or None."""
        if self._selected_card:
            return self._selected_card.client_id
        return None

    def get_selected_name(self) -> Optional[str]:
        if self._selected_card:
            return self._selected_card.name
        return None

    def select(self, card) -> None:
        """Select a card, deselecting the previous one.

        Args:
            card: The ClientCard to select, or None to clear selection.
        """
        if self._selected_card:
            self._selected_card.set_selected(False)

        self._selected_card = card
        if card:
            card.set_selected(True)

        if self.on_selection_changed:
            self.on_selection_changed(card)

    def clear_selection(self) -> None:
        self.select(None)

    def set_cards(self, cards: List[Any]) -> None:
        self._card_widgets = list(cards)
        self._selected_card = None

    def select_by_id(self, client_id) -> bool:
        """Re-select the card of a client after a refresh."""
        for card in self._card_widgets:
            if card.client_id == client_id:
                self.select(card)
                return True
        return False

    @staticmethod
    def matches(card, text: str) -> bool:
        """Name contains the text, or CPF/phone contains its digits (masks ignored)."""
        search = text.strip().lower()
        if not search:
            return True
        if search in card.name.lower():
            return True
        digits = only_digits(search)
        if not digits:
            return False
        return any(digits in only_digits(value) for value in (card.cpf, card.phone) if value)

    def apply_filter(self, text: str) -> None:
        """Show only the cards matching the search text."""
        self._filter_text = text
        for card in self._card_widgets:
            card.setVisible(self.matches(card, text))

    def refresh_filter(self) -> None:
        if self._filter_text:
            self.apply_filter(self._filter_text)

    def get_visible_cards(self) -> List[Any]:
        return [card for card in self._card_widgets if card.isVisible()]

    def get_visible_ids(self) -> List[int]:
        return [card.client_id for card in self._card_widgets if card.isVisible()]
