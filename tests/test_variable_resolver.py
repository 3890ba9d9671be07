"""
Tests for TemplateResolver
"""

import pytest

from flowbuilder.flow_engine import TemplateResolver, UNDEFINED, VariableStore


@pytest.fixture
def resolver():
    return TemplateResolver()


@pytest.fixture
def store():
    return VariableStore({
        'vars': {'count': 2, 'name': 'Ada', 'flag': False, 'nothing': None},
        'http1': {'result': {
            'status': 200,
            'data': [{'name': 'first'}, {'name': 'second'}],
        }},
        'loop': {'index': 1},
    })


class TestTemplateResolver:
    """Test {{path}} resolution"""

    def test_single_placeholder_preserves_type(self, resolver, store):
        """Test a whole-string placeholder returns the raw value"""
        assert resolver.resolve('{{vars.count}}', store) == (2, None)
        assert resolver.resolve('{{vars.flag}}', store) == (False, None)
        value, error = resolver.resolve('{{http1.result.data}}', store)
        assert value == [{'name': 'first'}, {'name': 'second'}]

    def test_whitespace_inside_braces(self, resolver, store):
        """Test {{ path }} with padding"""
        assert resolver.resolve('{{  vars.name }}', store) == ('Ada', None)

    def test_interpolation(self, resolver, store):
        """Test placeholders inside text"""
        value, error = resolver.resolve('Total: {{vars.count}} items for {{vars.name}}', store)
        assert value == 'Total: 2 items for Ada'
        assert error is None

    def test_interpolated_values_are_stringified(self, resolver, store):
        """Test None, booleans and containers inside text"""
        value, _ = resolver.resolve('[{{vars.nothing}}|{{vars.flag}}|{{http1.result.data[0]}}]', store)
        assert value == '[|false|{"name": "first"}]'

    def test_length(self, resolver, store):
        """Test .length on arrays"""
        assert resolver.resolve('{{http1.result.data.length}}', store) == (2, None)

    def test_index_and_nested_placeholder(self, resolver, store):
        """Test a placeholder inside a path"""
        assert resolver.resolve('{{http1.result.data[{{loop.index}}].name}}', store) == ('second', None)

    def test_missing_single_placeholder(self, resolver, store):
        """Test a missing path yields UNDEFINED and a missing_path error"""
        value, error = resolver.resolve('{{vars.missing}}', store)
        assert value is UNDEFINED
        assert error.kind == 'missing_path'
        assert error.path == 'vars.missing'

    def test_missing_placeholder_in_text_is_kept(self, resolver, store):
        """Test the literal placeholder stays in interpolated text"""
        value, error = resolver.resolve('Hi {{vars.missing}}!', store)
        assert value == 'Hi {{vars.missing}}!'
        assert error.kind == 'missing_path'

    def test_invalid_path(self, resolver, store):
        """Test malformed placeholder bodies"""
        value, error = resolver.resolve('{{not a path}}', store)
        assert value is UNDEFINED
        assert error.kind == 'invalid_path'

    def test_nesting_limit(self, resolver, store):
        """Test nesting deeper than three levels is refused"""
        value, error = resolver.resolve('{{a{{b{{c{{d}}}}}}}}', store)
        assert value is UNDEFINED
        assert error.kind == 'nesting_too_deep'

    def test_unclosed_braces_are_literal(self, resolver, store):
        """Test unbalanced {{ is left alone"""
        assert resolver.resolve('{{vars.count', store) == ('{{vars.count', None)

    def test_non_strings_pass_through(self, resolver, store):
        """Test numbers and None are returned unchanged"""
        assert resolver.resolve(42, store) == (42, None)
        assert resolver.resolve(None, store) == (None, None)

    def test_resolution_never_raises(self, resolver):
        """Test an empty store with odd input"""
        value, error = resolver.resolve('}} {{ }} {{', VariableStore())
        assert isinstance(value, str)

    def test_resolve_value_recurses(self, resolver, store):
        """Test dicts and lists are resolved; UNDEFINED becomes None"""
        value, errors = resolver.resolve_value({
            'count': '{{vars.count}}',
            'items': ['{{vars.name}}', '{{vars.missing}}'],
            'static': 5,
        }, store)
        assert value == {'count': 2, 'items': ['Ada', None], 'static': 5}
        assert [error.path for error in errors] == ['vars.missing']

    def test_find_references(self, resolver):
        """Test listing referenced paths"""
        template = {'url': '{{vars.base}}/items/{{http1.result.data[{{loop.index}}].id}}'}
        assert resolver.find_references(template) == ['vars.base', 'loop.index']

    def test_has_placeholders(self, resolver):
        """Test detecting templates"""
        assert resolver.has_placeholders(['plain', {'a': '{{vars.a}}'}])
        assert not resolver.has_placeholders('no braces here')
