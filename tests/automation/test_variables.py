"""Tests for the runtime variable store."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest

from udp_trigger.automation.variables import VariableStore


class TestReadWrite:
    """Tests for set/get/increment."""

    def test_set_and_get(self) -> None:
        """Values are stored as strings."""
        store = VariableStore()
        store.set("count", 5)  # type: ignore[arg-type]
        assert store.get("count") == "5"
        assert store.get("missing") is None
        assert "count" in store
        assert len(store) == 1

    def test_get_all_is_a_snapshot(self) -> None:
        """Mutating the snapshot does not touch the store."""
        store = VariableStore({"a": "1"})
        snapshot = store.get_all()
        snapshot["a"] = "changed"
        assert store.get("a") == "1"

    def test_increment_absent_variable(self) -> None:
        """An absent variable counts as zero."""
        store = VariableStore()
        assert store.increment("packet_count") == 1
        assert store.get("packet_count") == "1"

    def test_increment_non_numeric_value(self) -> None:
        """A non-integer value counts as zero."""
        store = VariableStore({"x": "abc"})
        assert store.increment("x", 5) == 5
        assert store.get("x") == "5"

    @pytest.mark.parametrize("value", ["1_0", " 3", "2.0", "+"])
    def test_increment_strict_integer_parsing(self, value: str) -> None:
        """Only sign-and-digits values count as integers."""
        store = VariableStore({"n": value})
        assert store.increment("n") == 1

    def test_increment_signed_value(self) -> None:
        store = VariableStore({"n": "+4"})
        assert store.increment("n") == 5

    def test_increment_negative_step(self) -> None:
        """Negative steps decrement."""
        store = VariableStore({"x": "10"})
        assert store.increment("x", -3) == 7

    def test_concurrent_increments_are_not_lost(self) -> None:
        """Increments from several threads all land."""
        store = VariableStore()

        def worker() -> None:
            for _ in range(200):
                store.increment("hits")

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert store.get("hits") == "1600"

    def test_clear(self) -> None:
        """Clear removes values and persistence marks."""
        store = VariableStore()
        store.set("a", "1", persist=True)
        store.clear()
        assert store.get_all() == {}
        assert store.persistent_items() == {}


class TestSubstitution:
    """Tests for {{name}} template substitution."""

    def test_known_placeholder_is_replaced(self) -> None:
        store = VariableStore({"name": "World"})
        assert store.substitute("Hello {{name}}!") == "Hello World!"

    def test_legacy_dollar_placeholder(self) -> None:
        store = VariableStore({"name": "World"})
        assert store.substitute("Hello {{$name}}!") == "Hello World!"

    def test_unknown_placeholder_is_left_verbatim(self) -> None:
        store = VariableStore()
        assert store.substitute("value={{missing}}") == "value={{missing}}"

    def test_text_without_placeholders_is_unchanged(self) -> None:
        store = VariableStore({"a": "1"})
        assert store.substitute("plain text") == "plain text"
        assert store.substitute("") == ""

    def test_names_sharing_a_prefix_do_not_collide(self) -> None:
        """{{ab}} is looked up as 'ab', never as 'a' followed by 'b}}'."""
        store = VariableStore({"a": "1", "ab": "2"})
        assert store.substitute("{{ab}}-{{a}}") == "2-1"
        assert store.substitute("{{a}}-{{ab}}") == "1-2"

    def test_substituted_values_are_not_expanded_again(self) -> None:
        """A value that looks like a placeholder stays literal."""
        store = VariableStore({"x": "{{y}}", "y": "Z"})
        assert store.substitute("{{x}}") == "{{y}}"

    def test_substitution_is_idempotent_on_its_output(self) -> None:
        store = VariableStore({"host": "10.0.0.1", "port": "9000"})
        once = store.substitute("{{host}}:{{port}}")
        assert store.substitute(once) == once


class TestListeners:
    """Tests for change listeners."""

    def test_listener_called_on_change_only(self) -> None:
        store = VariableStore()
        listener = MagicMock()
        store.add_listener(listener)

        store.set("mode", "on")
        store.set("mode", "on")
        store.set("mode", "off")

        assert listener.call_count == 2
        listener.assert_any_call("mode", None, "on")
        listener.assert_any_call("mode", "on", "off")

    def test_increment_notifies(self) -> None:
        store = VariableStore()
        listener = MagicMock()
        store.add_listener(listener)
        store.increment("n")
        listener.assert_called_once_with("n", None, "1")

    def test_failing_listener_does_not_break_writes(self) -> None:
        store = VariableStore()
        store.add_listener(MagicMock(side_effect=RuntimeError("boom")))
        store.set("a", "1")
        assert store.get("a") == "1"

    def test_remove_listener(self) -> None:
        store = VariableStore()
        listener = MagicMock()
        store.add_listener(listener)
        store.remove_listener(listener)
        store.set("a", "1")
        listener.assert_not_called()


class TestPersistenceHints:
    """Tests for persist marks and restore."""

    def test_persistent_items_only_include_marked_names(self) -> None:
        store = VariableStore()
        store.set("kept", "1", persist=True)
        store.set("transient", "2")
        assert store.persistent_items() == {"kept": "1"}

    def test_restore_marks_values_persistent_without_notifying(self) -> None:
        store = VariableStore()
        listener = MagicMock()
        store.add_listener(listener)
        store.restore({"kept": "1"})
        assert store.get("kept") == "1"
        assert store.persistent_items() == {"kept": "1"}
        listener.assert_not_called()
