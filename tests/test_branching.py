"""
Tests for BranchingHandler
"""

import pytest

from flowbuilder.expressions import Sandbox
from flowbuilder.flow_engine import NodeExecutionError, TemplateResolver, VariableStore
from flowbuilder.flow_engine.branching import BranchingHandler, ComparisonOperator, compare, parse_operator
from flowbuilder.flow_engine.definition import IfElseConfig


@pytest.fixture
def handler():
    return BranchingHandler(TemplateResolver(), Sandbox())


@pytest.fixture
def store():
    return VariableStore({
        'vars': {'count': 2, 'status': 'active', 'email': 'john@example.com', 'empty': ''},
        'http1': {'result': {'status': 200, 'data': {'id': 7, 'tags': ['a', 'b']}}},
    })


class TestBranchingHandler:
    """Test branching logic"""

    def test_simple_equals_condition(self, handler, store):
        """Test == condition"""
        config = IfElseConfig(left='{{vars.status}}', operator='==', right='active')
        assert handler.evaluate(config, store).result is True

    def test_equals_coerces_numbers(self, handler, store):
        """Test "200" == 200"""
        config = IfElseConfig(left='{{http1.result.status}}', operator='==', right='200')
        assert handler.evaluate(config, store).result is True

    def test_greater_than_condition(self, handler, store):
        """Test > condition"""
        config = IfElseConfig(left='{{vars.count}}', operator='>', right='0')
        assert handler.evaluate(config, store).result is True

    def test_less_or_equal_condition(self, handler, store):
        """Test <= condition"""
        config = IfElseConfig(left='{{vars.count}}', operator='<=', right=1)
        assert handler.evaluate(config, store).result is False

    def test_contains_condition(self, handler, store):
        """Test contains on strings and lists"""
        config = IfElseConfig(left='{{vars.email}}', operator='contains', right='@example.com')
        assert handler.evaluate(config, store).result is True
        config = IfElseConfig(left='{{http1.result.data.tags}}', operator='contains', right='b')
        assert handler.evaluate(config, store).result is True

    def test_starts_and_ends_with(self, handler, store):
        """Test startsWith and endsWith"""
        assert handler.evaluate(IfElseConfig(left='{{vars.email}}', operator='startsWith', right='john'), store).result
        assert handler.evaluate(IfElseConfig(left='{{vars.email}}', operator='endsWith', right='.com'), store).result

    def test_legacy_operator_names(self, handler, store):
        """Test SNAKE_CASE operator names"""
        config = IfElseConfig(left='{{vars.count}}', operator='GREATER_THAN', right=1)
        assert handler.evaluate(config, store).result is True

    def test_unresolved_operand_fails(self, handler, store):
        """Test a missing left operand fails the node"""
        config = IfElseConfig(left='{{vars.missing}}', operator='==', right='x')
        with pytest.raises(NodeExecutionError, match='left operand'):
            handler.evaluate(config, store)

    def test_unknown_operator_fails(self, handler, store):
        """Test unknown operators"""
        config = IfElseConfig(left='{{vars.count}}', operator='~=', right=1)
        with pytest.raises(NodeExecutionError, match='Unknown comparison operator'):
            handler.evaluate(config, store)

    def test_incomparable_values_take_false_branch(self, handler, store):
        """Test ordering a list against a number"""
        config = IfElseConfig(left='{{http1.result.data.tags}}', operator='>', right=1)
        decision = handler.evaluate(config, store)
        assert decision.result is False
        assert decision.warnings

    def test_expression_mode(self, handler, store):
        """Test sandboxed expressions"""
        config = IfElseConfig(mode='expression', expression='{{vars.count}} > 1 && vars.status == "active"')
        assert handler.evaluate(config, store).result is True

    def test_expression_missing_path_warns(self, handler, store):
        """Test missing paths in expressions are warnings"""
        config = IfElseConfig(mode='expression', expression='{{vars.missing}} > 1')
        decision = handler.evaluate(config, store)
        assert decision.result is False
        assert decision.warnings == ['Variable not found: vars.missing']

    def test_expression_error_fails(self, handler, store):
        """Test invalid expressions fail the node"""
        config = IfElseConfig(mode='expression', expression='{{vars.count}} >')
        with pytest.raises(NodeExecutionError, match='Expression failed'):
            handler.evaluate(config, store)

    def test_exists_mode(self, handler, store):
        """Test existence checks"""
        assert handler.evaluate(IfElseConfig(mode='exists', exists_path='{{http1.result.data.id}}'), store).result
        assert not handler.evaluate(IfElseConfig(mode='exists', exists_path='vars.missing'), store).result
        assert not handler.evaluate(IfElseConfig(mode='exists', exists_path='vars.empty'), store).result


class TestOperators:
    """Test operator parsing and comparison"""

    @pytest.mark.parametrize('text,expected', [
        ('==', ComparisonOperator.EQUALS),
        ('===', ComparisonOperator.EQUALS),
        ('notEquals', ComparisonOperator.NOT_EQUALS),
        ('LESS_THAN', ComparisonOperator.LESS_THAN),
        ('starts_with', ComparisonOperator.STARTS_WITH),
        ('bogus', None),
        (None, None),
    ])
    def test_parse_operator(self, text, expected):
        """Test symbols and names"""
        assert parse_operator(text) == expected

    def test_compare_raises_for_incomparable(self):
        """Test ordering None"""
        with pytest.raises(TypeError):
            compare(None, ComparisonOperator.GREATER_THAN, 1)
