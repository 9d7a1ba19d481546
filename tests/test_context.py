import copy

import pytest
from quantalogic_scopes import (
    SELECTION_TARGET_VARIABLE_NAME,
    UNSET,
    IdCounterTable,
    InvalidArgumentError,
    OverlayMap,
    ScopedContext,
    StateError,
)


class Customer:
    def __init__(self, name):
        self.name = name


@pytest.fixture
def root():
    return ScopedContext(
        {"x": 1},
        capability_tags={"spring", "conversion"},
        execution_attributes={"locale": "en"},
        template_name="home",
    )


class TestConstruction:
    def test_variables_are_required(self):
        with pytest.raises(InvalidArgumentError) as exc_info:
            ScopedContext(None)
        assert exc_info.value.argument == "variables"
        assert isinstance(exc_info.value, ValueError)

    def test_root_reads_base_by_reference(self):
        base = {"x": 1}
        context = ScopedContext(base)
        assert context.local_variables is base
        assert context.get("x") == 1
        assert not context.has_selection_target()
        assert context.selection is UNSET
        assert context.capability_tags == frozenset()

    def test_initial_selection_target(self):
        context = ScopedContext({}, selection_target="order")
        assert context.has_selection_target()
        assert context.selection_target == "order"

    def test_execution_attributes_and_template_name(self, root):
        assert root.get_execution_attribute("locale") == "en"
        assert root.get_execution_attribute("missing") is None
        assert root.template_name == "home"
        with pytest.raises(TypeError):
            root.execution_attributes["locale"] = "fr"


class TestAddLocalVariables:
    """Deriving child scopes with new bindings"""

    def test_empty_variables_return_same_context(self, root):
        assert root.add_local_variables({}) is root
        assert root.add_local_variables(None) is root

    def test_child_sees_parent_and_parent_is_isolated(self, root):
        child = root.add_local_variables({"y": 2})
        assert child.get("x") == 1
        assert child.get("y") == 2
        assert root.get("y") is None
        assert "y" not in root
        assert "y" in child

    def test_child_store_wraps_parent_store(self, root):
        child = root.add_local_variables({"y": 2})
        assert isinstance(child.local_variables, OverlayMap)
        assert child.local_variables.target is root.local_variables

    def test_child_can_shadow_parent(self, root):
        child = root.add_local_variables({"x": 10})
        assert child.get("x") == 10
        assert root.get("x") == 1
        assert len(child.variables) == 1

    def test_siblings_are_isolated(self, root):
        first = root.add_local_variables({"v": 1})
        second = root.add_local_variables({"v": 2})
        assert first.get("v") == 1
        assert second.get("v") == 2

    def test_fields_are_carried_over(self, root):
        target = Customer("ann")
        selected = root.set_selection_target(target)
        child = selected.add_local_variables({"y": 2})
        assert child.selection_target is target
        assert child.counters is root.counters
        assert child.capability_tags is root.capability_tags
        assert child.execution_attributes is root.execution_attributes
        assert child.template_name == "home"

    def test_reserved_variable_sets_selection_target(self, root):
        selected = root.set_selection_target("old")
        child = selected.add_local_variables({SELECTION_TARGET_VARIABLE_NAME: "new", "z": 1})
        assert child.selection_target == "new"
        assert child.get("z") == 1
        assert selected.selection_target == "old"

    def test_reserved_variable_with_none_value(self, root):
        child = root.add_local_variables({SELECTION_TARGET_VARIABLE_NAME: None})
        assert child.has_selection_target()
        assert child.selection_target is None

    def test_deep_derivation_chain(self, root):
        context = root
        for level in range(50):
            context = context.add_local_variables({"level%d" % level: level})
        assert context.local_variables.depth == 50
        assert len(context.variables) == 51
        assert dict(context.variables)["level49"] == 49
        assert context.get("x") == 1


class TestSelectionTarget:
    """Explicit selection versus no selection"""

    def test_explicit_none_differs_from_unset(self, root):
        child = root.add_local_variables({"y": 2})
        selected = child.set_selection_target(None)
        assert selected.has_selection_target()
        assert selected.selection_target is None
        assert not child.has_selection_target()
        assert child.selection_target is None

    def test_set_selection_target_shares_store(self, root):
        child = root.add_local_variables({"y": 2})
        selected = child.set_selection_target("target")
        assert selected.local_variables is child.local_variables
        assert selected is not child

    def test_combined_derivation(self, root):
        target = Customer("bob")
        child = root.add_local_variables_and_selection_target({"y": 2}, target)
        assert child.selection_target is target
        assert child.get("y") == 2
        assert child.get("x") == 1

    def test_combined_derivation_without_variables_shares_store(self, root):
        child = root.add_local_variables_and_selection_target({}, "target")
        assert child.local_variables is root.local_variables
        assert child.selection_target == "target"

    def test_selection_evaluation_root(self, root):
        assert dict(root.selection_evaluation_root) == {"x": 1}
        assert root.set_selection_target(None).selection_evaluation_root is None
        target = Customer("cy")
        assert root.set_selection_target(target).selection_evaluation_root is target

    def test_unset_survives_copy(self):
        assert copy.copy(UNSET) is UNSET
        assert copy.deepcopy(UNSET) is UNSET
        assert not UNSET


class TestIdSequences:
    def test_sequence_scenario(self, root):
        assert root.get_and_increment_id_seq("x") == 1
        assert root.get_and_increment_id_seq("x") == 2
        assert root.get_and_increment_id_seq("x") == 3
        assert root.get_previous_id_seq("x") == 3
        assert root.get_next_id_seq("x") == 4
        with pytest.raises(StateError):
            root.get_previous_id_seq("y")

    def test_counters_are_shared_across_lineage(self, root):
        first = root.add_local_variables({"a": 1})
        second = root.set_selection_target("t").add_local_variables({"b": 2})
        assert first.get_and_increment_id_seq("row") == 1
        assert second.get_and_increment_id_seq("row") == 2
        assert root.get_next_id_seq("row") == 3
        assert root.id_counts == {"row": 3}

    def test_injected_counter_table(self):
        table = IdCounterTable()
        first = ScopedContext({}, counters=table)
        second = ScopedContext({}, counters=table)
        first.get_and_increment_id_seq("id")
        assert second.get_next_id_seq("id") == 2

    def test_none_id_is_rejected(self, root):
        with pytest.raises(InvalidArgumentError):
            root.get_and_increment_id_seq(None)


class TestReadAccessors:
    def test_variables_view_is_read_only(self, root):
        child = root.add_local_variables({"y": 2})
        with pytest.raises(TypeError):
            child.variables["z"] = 3
        assert set(child.variable_names()) == {"x", "y"}

    def test_get_variable(self, root):
        assert root.get_variable("x") == 1
        with pytest.raises(NameError):
            root.get_variable("nope")
        assert root.get("nope", "fallback") == "fallback"

    def test_capabilities(self, root):
        assert root.has_capability("spring")
        assert not root.has_capability("ognl")
        assert root.capability_tags == frozenset({"spring", "conversion"})

    def test_single_string_capability_is_one_tag(self):
        context = ScopedContext({}, capability_tags="spring")
        assert context.capability_tags == frozenset({"spring"})
        assert context.has_capability("spring")
        assert not context.has_capability("s")

    def test_repr(self, root):
        assert "ScopedContext" in repr(root)
        assert "<UNSET>" in repr(root)
