"""
Tests for FlowExecutor - graph traversal, loops, termination and cancellation
"""

import asyncio
from unittest.mock import MagicMock

import httpx
import pytest

from flowbuilder.flow_engine import FlowExecutor, FlowValidationError, HttpClient, RunState, Severity
from flowbuilder.flow_engine.definition import NodeKind
from flowbuilder.flow_engine.nodes import NodeExecutor


def node(node_id, kind, **data):
    return {'id': node_id, 'type': kind, 'data': data}


def log(node_id, message):
    return node(node_id, 'logMessage', message=message)


def edge(source, target, handle=None):
    return {'id': f"{source}-{handle or 'next'}-{target}", 'source': source, 'target': target, 'sourceHandle': handle}


def chain(*node_ids):
    return [edge(source, target) for source, target in zip(node_ids, node_ids[1:])]


def flow(nodes, edges=None, flow_id='flow-1'):
    return {'id': flow_id, 'name': 'Test flow', 'nodes': nodes, 'edges': edges or []}


def messages(result, node_id=None):
    return [entry.message for entry in result.log if node_id is None or entry.node_id == node_id]


def executed(result):
    """Node ids in the order they started executing."""
    return [entry.node_id for entry in result.log if entry.message.startswith('Executing ')]


class TestFlowExecutor:
    """Test end-to-end runs"""

    @pytest.mark.asyncio
    async def test_http_set_variable_if_else(self, executor, api):
        """Test fetching items, counting them and branching on the count"""
        api.add('GET', '/items', json=[{}, {}])
        document = flow(
            [
                node('http1', 'httpRequest', url='https://api.test/items'),
                node('set1', 'setVariable', variableKey='count', variableValue='{{http1.result.data.length}}'),
                node('if1', 'ifElse', comparison={'left': '{{vars.count}}', 'operator': '>', 'right': '0'}),
                log('yes', 'Found {{vars.count}} items'),
                log('no', 'Nothing found'),
            ],
            chain('http1', 'set1', 'if1') + [edge('if1', 'yes', 'true'), edge('if1', 'no', 'false')],
        )

        result = await executor.run(document, execution_id='exec-1')

        assert result.status == RunState.SUCCESS
        assert result.error is None
        assert result.final_variables['vars']['count'] == 2
        assert result.final_variables['if1']['result'] == {'result': True}
        assert executed(result) == ['http1', 'set1', 'if1', 'yes']
        assert messages(result, 'yes')[-1] == 'Found 2 items'
        assert messages(result, 'no') == []
        assert result.log[0].message == 'Flow execution started: Test flow'
        assert result.log[-1].message == 'Flow execution completed'
        assert result.log[-1].severity == Severity.SUCCESS

    @pytest.mark.asyncio
    async def test_result_metadata(self, executor, fixed_now):
        """Test ids, timestamps and system variables"""
        result = await executor.run(flow([log('a', 'run {{system.execution.id}}')]), execution_id='exec-9')

        assert result.execution_id == 'exec-9'
        assert result.flow_id == 'flow-1'
        assert result.started_at == fixed_now
        assert result.duration_ms == 0
        assert result.final_variables['system']['flow']['id'] == 'flow-1'
        assert messages(result, 'a')[-1] == 'run exec-9'
        assert result.to_dict()['status'] == 'success'

    @pytest.mark.asyncio
    async def test_initial_variables(self, executor):
        """Test variables supplied by the caller"""
        result = await executor.run(flow([log('a', 'Hello {{vars.name}}')]), initial_variables={'vars': {'name': 'Ada'}})
        assert messages(result, 'a')[-1] == 'Hello Ada'

    @pytest.mark.asyncio
    async def test_invalid_flow_never_starts(self, executor, api):
        """Test validation errors are raised before any node runs"""
        document = flow([node('http1', 'httpRequest', url='https://api.test/items'), log('b', 'x')],
                        [edge('http1', 'ghost')])
        with pytest.raises(FlowValidationError):
            await executor.run(document)
        assert api.requests == []

    @pytest.mark.asyncio
    async def test_entry_nodes_run_in_document_order(self, executor):
        """Test independent chains"""
        document = flow([log('b1', 'b1'), log('a1', 'a1'), log('b2', 'b2')], chain('b1', 'b2'))
        result = await executor.run(document)
        assert executed(result) == ['b1', 'b2', 'a1']

    @pytest.mark.asyncio
    async def test_join_runs_once(self, executor):
        """Test a node reached by two chains runs only once"""
        document = flow([log('a', 'a'), log('b', 'b'), log('c', 'c')], [edge('a', 'c'), edge('b', 'c')])
        result = await executor.run(document)
        assert executed(result) == ['a', 'c', 'b']
        assert "Chain joins already executed node 'c'" in messages(result)

    @pytest.mark.asyncio
    async def test_no_forward_references(self, executor):
        """Test a node cannot read a variable written later"""
        document = flow(
            [log('first', 'x={{vars.x}}'), node('set', 'setVariable', variableKey='x', variableValue='1')],
            chain('first', 'set'),
        )
        result = await executor.run(document)

        first = [entry for entry in result.log if entry.node_id == 'first']
        assert first[1].severity == Severity.WARN
        assert first[-1].message == 'x={{vars.x}}'
        assert result.final_variables['vars']['x'] == '1'

    @pytest.mark.asyncio
    async def test_deterministic(self, executor):
        """Test identical inputs give identical results"""
        document = flow(
            [
                node('set', 'setVariable', variableKey='items', variableValue='{{vars.input}}'),
                node('loop1', 'loop', arrayPath='vars.items'),
                log('each', '{{loop.number}}/{{vars.items.length}}'),
                node('if', 'ifElse', type='expression', expression='vars.items.length > 2'),
                log('big', 'big'),
            ],
            chain('set', 'loop1') + [
                edge('loop1', 'each', 'body'), edge('each', 'loop1'),
                edge('loop1', 'if', 'complete'), edge('if', 'big', 'true'),
            ],
        )
        variables = {'vars': {'input': [3, 1, 2]}}

        first = await executor.run(document, execution_id='same', initial_variables=variables)
        second = await executor.run(document, execution_id='same', initial_variables=variables)

        assert first.to_dict() == second.to_dict()

    @pytest.mark.asyncio
    async def test_final_variables_are_read_only(self, executor):
        """Test the result cannot be changed after the run"""
        result = await executor.run(flow([node('set', 'setVariable', variableKey='x', variableValue='1')]))

        with pytest.raises(TypeError):
            result.final_variables['vars'] = {}
        with pytest.raises(TypeError):
            result.final_variables['vars']['x'] = '2'

        copied = result.to_dict()['finalVariables']
        copied['vars']['x'] = '2'
        assert result.final_variables['vars']['x'] == '1'


class TestTermination:
    """Test StopJob, failures and continueOnError"""

    @pytest.mark.asyncio
    async def test_stop_job_error_short_circuits(self, executor):
        """Test nodes after StopJob never run"""
        document = flow(
            [log('a', 'a'), node('stop', 'stopJob', stopType='error', errorMessage='boom'), log('b', 'b')],
            chain('a', 'stop', 'b'),
        )
        result = await executor.run(document)

        assert result.status == RunState.FAILED
        assert result.error == 'boom'
        assert messages(result, 'b') == []
        assert result.log[-1].message == 'Flow execution failed: boom'

    @pytest.mark.asyncio
    async def test_stop_job_success(self, executor):
        """Test StopJob(success) ends the run successfully"""
        document = flow([node('stop', 'stopJob'), log('b', 'b')], chain('stop', 'b'))
        result = await executor.run(document)

        assert result.status == RunState.SUCCESS
        assert result.error is None
        assert executed(result) == ['stop']

    @pytest.mark.asyncio
    async def test_stop_job_cancel(self, executor):
        """Test StopJob(cancel) ends the run as cancelled"""
        result = await executor.run(flow([node('stop', 'stopJob', stopType='cancel')]))
        assert result.status == RunState.CANCELLED
        assert result.error == 'Flow cancelled by StopJob node'

    @pytest.mark.asyncio
    async def test_node_failure_fails_run(self, executor, api):
        """Test an HTTP error stops the run"""
        api.add('GET', '/broken', status=500, text='boom')
        document = flow([node('http1', 'httpRequest', url='https://api.test/broken'), log('b', 'b')], chain('http1', 'b'))

        result = await executor.run(document)

        assert result.status == RunState.FAILED
        assert result.error == 'Node http1 failed: HTTP 500 from GET https://api.test/broken'
        assert "Node 'http1' failed: HTTP 500 from GET https://api.test/broken" in messages(result, 'http1')
        assert result.final_variables['http1']['result']['status'] == 500
        assert executed(result) == ['http1']

    @pytest.mark.asyncio
    async def test_continue_on_error(self, executor, api):
        """Test continueOnError follows the default edge"""
        api.add('GET', '/broken', status=500, text='boom')
        document = flow(
            [
                {'id': 'http1', 'type': 'httpRequest', 'data': {'url': 'https://api.test/broken', 'continueOnError': True}},
                log('b', 'status {{http1.result.status}}'),
            ],
            chain('http1', 'b'),
        )
        result = await executor.run(document)

        assert result.status == RunState.SUCCESS
        assert 'Continuing after error (continueOnError)' in messages(result, 'http1')
        assert messages(result, 'b')[-1] == 'status 500'

    @pytest.mark.asyncio
    async def test_unexpected_executor_error_is_wrapped(self, executor):
        """Test non-engine exceptions fail the node, not the process"""
        class BrokenLog(NodeExecutor):
            kind = NodeKind.LOG_MESSAGE

            async def execute(self, context):
                raise RuntimeError('kaboom')

        executor.registry.register(BrokenLog())
        result = await executor.run(flow([log('a', 'a')]))

        assert result.status == RunState.FAILED
        assert 'Unexpected error: kaboom' in result.error

    @pytest.mark.asyncio
    async def test_unstorable_write_fails_node(self, executor):
        """Test a write to a malformed key fails the node instead of escaping the run"""
        class BadWriteLog(NodeExecutor):
            kind = NodeKind.LOG_MESSAGE

            async def execute(self, context):
                return context.outcome(writes=[('bad key.result', 1)])

        executor.registry.register(BadWriteLog())
        result = await executor.run(flow([log('a', 'a'), log('b', 'b')], chain('a', 'b')))

        assert result.status == RunState.FAILED
        assert result.error.startswith('Node a failed: Could not store node output')
        assert messages(result, 'a')[-1].startswith("Node 'a' failed: Could not store node output")
        assert executed(result) == ['a']

    @pytest.mark.asyncio
    async def test_invalid_node_id_never_starts(self, executor):
        """Test node ids that cannot be addressed as variables are rejected before the run"""
        document = flow(
            [log('a', 'a'), node('if 1', 'ifElse', comparison={'left': '1', 'operator': '==', 'right': '1'})],
            chain('a', 'if 1'),
        )

        with pytest.raises(FlowValidationError) as exc_info:
            await executor.run(document)
        assert exc_info.value.errors[0].node_id == 'if 1'


class TestSkippedNodes:
    """Test skipped nodes"""

    @pytest.mark.asyncio
    async def test_skipped_node_passes_through(self, executor, api):
        """Test a skipped node does not run but the chain continues"""
        document = flow(
            [node('http1', 'httpRequest', url='https://api.test/items', skipped=True), log('b', 'b')],
            chain('http1', 'b'),
        )
        result = await executor.run(document)

        assert api.requests == []
        assert messages(result, 'http1') == ['Node skipped']
        assert messages(result, 'b')[-1] == 'b'
        assert 'http1' not in result.final_variables

    @pytest.mark.asyncio
    async def test_skipped_if_else_follows_false(self, executor):
        """Test a skipped IfElse takes the false branch"""
        document = flow(
            [
                node('if', 'ifElse', comparison={'left': '1', 'operator': '==', 'right': '1'}, skipped=True),
                log('t', 't'),
                log('f', 'f'),
            ],
            [edge('if', 't', 'true'), edge('if', 'f', 'false')],
        )
        result = await executor.run(document)
        assert executed(result) == ['f']


class TestLoops:
    """Test Loop bodies inside runs"""

    def loop_flow(self, loop_data, body_message, after_message='done'):
        return flow(
            [node('loop1', 'loop', **loop_data), log('body', body_message), log('after', after_message)],
            [edge('loop1', 'body', 'body'), edge('body', 'loop1'), edge('loop1', 'after', 'complete')],
        )

    @pytest.mark.asyncio
    async def test_for_each_order(self, executor):
        """Test items are visited in order and loop.* is scoped to the body"""
        document = self.loop_flow(
            {'arrayPath': '{{vars.items}}'},
            'Item {{loop.index}}: {{loop.item}}',
            'done after {{loop1.result.iterations}}',
        )

        result = await executor.run(document, initial_variables={'vars': {'items': ['a', 'b', 'c']}})

        assert result.status == RunState.SUCCESS
        assert [m for m in messages(result, 'body') if m.startswith('Item')] == ['Item 0: a', 'Item 1: b', 'Item 2: c']
        assert messages(result, 'after')[-1] == 'done after 3'
        assert 'loop' not in result.final_variables

    @pytest.mark.asyncio
    async def test_loop_entries_precede_body_entries(self, executor):
        """Test the execution log follows execution order"""
        document = self.loop_flow({'arrayPath': 'vars.items'}, 'item {{loop.item}}')
        result = await executor.run(document, initial_variables={'vars': {'items': [1, 2]}})

        nodes = [entry.node_id for entry in result.log if entry.node_id]
        assert nodes == ['loop1', 'loop1', 'body', 'body', 'body', 'body', 'after', 'after']

    @pytest.mark.asyncio
    async def test_batching(self, executor):
        """Test batchSize exposes loop.batch"""
        document = self.loop_flow({'arrayPath': 'vars.items', 'batchSize': 2}, '{{loop.batch}}')
        result = await executor.run(document, initial_variables={'vars': {'items': [1, 2, 3, 4, 5]}})

        assert [m for m in messages(result, 'body') if m.startswith('[')] == ['[1, 2]', '[3, 4]', '[5]']

    @pytest.mark.asyncio
    async def test_body_writes_persist(self, executor):
        """Test variables set inside the body outlive the loop"""
        document = flow(
            [
                node('loop1', 'loop', arrayPath='vars.items'),
                node('sum', 'setVariable', variableKey='total', variableValue='{{vars.total}}',
                     useTransform=True, transformScript='value + loop.item'),
            ],
            [edge('loop1', 'sum', 'body'), edge('sum', 'loop1')],
        )
        result = await executor.run(document, initial_variables={'vars': {'items': [1, 2, 3], 'total': 0}})
        assert result.final_variables['vars']['total'] == 6

    @pytest.mark.asyncio
    async def test_nested_loops(self, executor):
        """Test inner loops see their own loop.* values"""
        document = flow(
            [
                node('outer', 'loop', arrayPath='vars.rows'),
                node('inner', 'loop', arrayPath='{{loop.item}}'),
                log('cell', '{{loop.item}}'),
            ],
            [
                edge('outer', 'inner', 'body'), edge('inner', 'outer'),
                edge('inner', 'cell', 'body'), edge('cell', 'inner'),
            ],
        )
        result = await executor.run(document, initial_variables={'vars': {'rows': [['a', 'b'], ['c']]}})

        assert result.status == RunState.SUCCESS
        assert [entry.message for entry in result.log
                if entry.node_id == 'cell' and entry.severity == Severity.INFO
                and not entry.message.startswith('Executing')] == ['a', 'b', 'c']

    @pytest.mark.asyncio
    async def test_while_loop_bound(self, executor):
        """Test a while loop whose condition never turns false fails after maxIterations"""
        document = self.loop_flow({'loopType': 'while', 'conditionExpression': 'true', 'maxIterations': 3}, 'tick')
        result = await executor.run(document)

        assert result.status == RunState.FAILED
        assert 'maxIterations' in result.error
        assert messages(result, 'body').count('tick') == 3
        assert messages(result, 'after') == []

    @pytest.mark.asyncio
    async def test_while_loop_counts(self, executor):
        """Test a while loop driven by a variable"""
        document = flow(
            [
                node('loop1', 'loop', loopType='while', conditionExpression='vars.i < 3'),
                node('inc', 'setVariable', variableKey='i', variableValue='{{vars.i}}',
                     useTransform=True, transformScript='value + 1'),
            ],
            [edge('loop1', 'inc', 'body'), edge('inc', 'loop1')],
        )
        result = await executor.run(document, initial_variables={'vars': {'i': 0}})

        assert result.final_variables['vars']['i'] == 3
        assert result.final_variables['loop1']['result']['iterations'] == 3


class TestDelaysAndScheduling:
    """Test Delay nodes inside runs"""

    @pytest.mark.asyncio
    async def test_duration_delay_sleeps(self, executor, sleeper):
        """Test the run waits through the injected sleep"""
        document = flow([node('wait', 'delay', delayAmount=3), log('b', 'b')], chain('wait', 'b'))
        result = await executor.run(document)
        assert sleeper.calls == [3.0]
        assert result.status == RunState.SUCCESS

    @pytest.mark.asyncio
    async def test_cron_delay_registers_and_continues(self, executor, schedule_registry, sleeper):
        """Test cron mode registers a schedule and the run goes on"""
        document = flow([node('cron', 'delay', delayType='cron', cronExpression='0 9 * * 1'), log('b', 'b')],
                        chain('cron', 'b'))
        result = await executor.run(document, execution_id='exec-cron')

        assert result.status == RunState.SUCCESS
        assert sleeper.calls == []
        directive = schedule_registry.directives[0]
        assert (directive.flow_id, directive.node_id, directive.execution_id) == ('flow-1', 'cron', 'exec-cron')
        assert executed(result) == ['cron', 'b']

    @pytest.mark.asyncio
    async def test_delay_does_not_block_other_runs(self, settings, http_client, clock):
        """Test concurrent runs on one executor keep their own state while one waits"""
        waiting = asyncio.Event()
        release = asyncio.Event()
        finished = []

        async def gated_sleep(seconds):
            waiting.set()
            await release.wait()

        executor = FlowExecutor(settings=settings, http_client=http_client, clock=clock, sleep=gated_sleep)
        slow = flow(
            [node('wait', 'delay', delayAmount=5), node('set', 'setVariable', variableKey='who', variableValue='slow')],
            chain('wait', 'set'),
            flow_id='flow-slow',
        )
        fast = flow(
            [node('set', 'setVariable', variableKey='who', variableValue='fast'), log('b', '{{system.flow.id}}')],
            chain('set', 'b'),
            flow_id='flow-fast',
        )

        async def run_slow():
            result = await executor.run(slow, execution_id='exec-slow')
            finished.append('slow')
            return result

        async def run_fast():
            await waiting.wait()
            result = await executor.run(fast, execution_id='exec-fast')
            finished.append('fast')
            release.set()
            return result

        slow_result, fast_result = await asyncio.gather(run_slow(), run_fast())

        assert finished == ['fast', 'slow']
        assert slow_result.status == fast_result.status == RunState.SUCCESS
        assert slow_result.final_variables['vars']['who'] == 'slow'
        assert fast_result.final_variables['vars']['who'] == 'fast'
        assert fast_result.final_variables['system']['execution']['id'] == 'exec-fast'
        assert messages(fast_result, 'b')[-1] == 'flow-fast'
        assert all(entry.node_id != 'wait' for entry in fast_result.log)


class TestCancellation:
    """Test cancelling runs from outside"""

    @pytest.mark.asyncio
    async def test_cancel_during_delay(self, settings, http_client, clock):
        """Test cancel interrupts a waiting node"""
        waiting = asyncio.Event()

        async def blocking_sleep(seconds):
            waiting.set()
            await asyncio.Event().wait()

        executor = FlowExecutor(settings=settings, http_client=http_client, clock=clock, sleep=blocking_sleep)
        document = flow([node('wait', 'delay', delayAmount=10), log('b', 'b')], chain('wait', 'b'))

        handle = executor.start(document, execution_id='exec-c')
        await waiting.wait()
        handle.cancel()
        result = await handle.wait()

        assert result.status == RunState.CANCELLED
        assert result.error == 'Execution cancelled'
        assert result.log[-1].message == 'Flow execution cancelled'
        assert messages(result, 'b') == []
        assert handle.done()

    @pytest.mark.asyncio
    async def test_cancel_during_http_request(self, settings, clock):
        """Test cancel aborts an in-flight request and nothing is written"""
        started = asyncio.Event()

        async def hanging_handler(request):
            started.set()
            await asyncio.Event().wait()

        http_client = HttpClient(client=httpx.AsyncClient(transport=httpx.MockTransport(hanging_handler)))
        executor = FlowExecutor(settings=settings, http_client=http_client, clock=clock)
        document = flow([node('h', 'httpRequest', url='https://api.test/slow'), log('b', 'b')], chain('h', 'b'))

        handle = executor.start(document)
        await started.wait()
        handle.cancel()
        result = await handle.wait()

        assert result.status == RunState.CANCELLED
        assert messages(result) == [
            'Flow execution started: Test flow',
            "Executing httpRequest node 'h'",
            'Flow execution cancelled',
        ]
        assert 'h' not in result.final_variables

    @pytest.mark.asyncio
    async def test_cancel_before_first_node(self, executor):
        """Test a cancelled pending run executes nothing"""
        handle = executor.start(flow([log('a', 'a')]))
        handle.cancel()
        result = await handle.wait()

        assert result.status == RunState.CANCELLED
        assert executed(result) == []


class TestPersistence:
    """Test handing results to the execution store"""

    @pytest.mark.asyncio
    async def test_result_is_saved(self, settings, http_client, clock):
        """Test the store receives the finished result"""
        store = MagicMock()
        executor = FlowExecutor(settings=settings, http_client=http_client, clock=clock, execution_store=store)

        result = await executor.run(flow([log('a', 'a')]))

        store.save.assert_called_once_with(result)

    @pytest.mark.asyncio
    async def test_store_failure_does_not_fail_run(self, settings, http_client, clock):
        """Test persistence errors are logged only"""
        store = MagicMock()
        store.save.side_effect = RuntimeError('database is down')
        executor = FlowExecutor(settings=settings, http_client=http_client, clock=clock, execution_store=store)

        result = await executor.run(flow([log('a', 'a')]))

        assert result.status == RunState.SUCCESS
