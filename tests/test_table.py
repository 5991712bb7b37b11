from clr_parser import (
    END_MARKER,
    ActionType,
    CLRTableGenerator,
    ParseAction,
    build_automaton,
    build_parsing_table,
    nonterminal,
    parse_grammar,
    run,
    terminal,
)


a = terminal("a")
b = terminal("b")
A = nonterminal("A")
S = nonterminal("S")


def _table(text):
    grammar = parse_grammar(text)
    return grammar, build_parsing_table(build_automaton(grammar), grammar)


def test_shift_and_goto_entries(aab_table):
    assert aab_table.action(0, a) == ParseAction.shift(3)
    assert aab_table.action(0, b) == ParseAction.shift(4)
    assert aab_table.goto(0, S) == 1
    assert aab_table.goto(0, A) == 2
    assert aab_table.goto(3, A) == 8


def test_reduce_entries(aab_table):
    assert aab_table.action(4, a) == ParseAction.reduce(3)
    assert aab_table.action(4, b) == ParseAction.reduce(3)
    assert aab_table.action(5, END_MARKER) == ParseAction.reduce(1)
    assert aab_table.action(7, END_MARKER) == ParseAction.reduce(3)
    assert aab_table.action(8, a) == ParseAction.reduce(2)
    assert aab_table.action(9, END_MARKER) == ParseAction.reduce(2)
    assert aab_table.action(4, END_MARKER) is None


def test_accept_only_on_augmented_item(aab_table, expression_grammar):
    accepting = [key for key, action in aab_table.action_table.items()
                 if action.action_type == ActionType.ACCEPT]
    assert accepting == [(1, END_MARKER)]

    table = build_parsing_table(build_automaton(expression_grammar), expression_grammar)
    accepting = [key for key, action in table.action_table.items()
                 if action.action_type == ActionType.ACCEPT]
    assert len(accepting) == 1
    assert accepting[0][1] == END_MARKER


def test_goto_table_only_has_nonterminals(expression_grammar):
    table = build_parsing_table(build_automaton(expression_grammar), expression_grammar)
    assert all(symbol.is_nonterminal for (_, symbol) in table.goto_table)
    assert all(symbol.is_terminal for (_, symbol) in table.action_table)


def test_table_lists(aab_table):
    assert aab_table.terminals == [a, b, END_MARKER]
    assert aab_table.nonterminals == [S, A]
    assert aab_table.states == list(range(10))


def test_unambiguous_grammar_has_no_conflicts(aab_table, expression_grammar):
    assert aab_table.conflicts == []
    table = build_parsing_table(build_automaton(expression_grammar), expression_grammar)
    assert table.conflicts == []


def test_shift_wins_over_reduce():
    grammar, table = _table("E -> E plus E\nE -> id")
    plus = terminal("plus")
    conflicts = [c for c in table.conflicts if c.conflict_type == "shift/reduce"]
    assert conflicts
    for conflict in conflicts:
        assert conflict.symbol == plus
        kept, discarded = conflict.actions
        assert kept.action_type == ActionType.SHIFT
        assert discarded == ParseAction.reduce(1)
        assert table.action(conflict.state_id, plus) == kept


def test_reduce_reduce_keeps_the_last_production():
    grammar, table = _table("S -> A\nS -> B\nA -> x\nB -> x")
    conflicts = [c for c in table.conflicts if c.conflict_type == "reduce/reduce"]
    assert len(conflicts) == 1
    conflict = conflicts[0]
    assert conflict.symbol == END_MARKER
    assert conflict.actions == (ParseAction.reduce(4), ParseAction.reduce(3))
    assert table.action(conflict.state_id, END_MARKER) == ParseAction.reduce(4)
    assert "reduce/reduce conflict" in str(conflict)


def test_generator_can_be_rerun(aab_grammar, aab_automaton):
    generator = CLRTableGenerator(aab_grammar, aab_automaton)
    first_tables = generator.generate_parsing_tables()
    second_tables = generator.generate_parsing_tables()
    assert first_tables.action_table == second_tables.action_table
    assert first_tables.goto_table == second_tables.goto_table


def test_action_codes():
    assert ParseAction.shift(3).code == "s3"
    assert ParseAction.reduce(2).code == "r2"
    assert ParseAction.accept().code == "acc"
    assert str(ParseAction.shift(3)) == "shift 3"
    assert str(ParseAction.reduce(2)) == "reduce 2"
    assert str(ParseAction.accept()) == "accept"


def test_to_dict(aab_table):
    data = aab_table.to_dict()
    assert data['terminals'] == ["a", "b", "$"]
    assert data['non_terminals'] == ["S", "A"]
    assert data['states'] == list(range(10))
    assert data['action']["0"] == {"a": "s3", "b": "s4"}
    assert data['action']["1"] == {"$": "acc"}
    assert data['goto']["0"] == {"S": 1, "A": 2}
    assert data['goto']["4"] == {}


def test_accept_reduce_conflict_keeps_accept():
    grammar, table = _table("S -> S\nS -> a")
    assert len(table.conflicts) == 1
    conflict = table.conflicts[0]
    assert conflict.conflict_type == "accept/reduce"
    assert conflict.symbol == END_MARKER
    assert conflict.actions == (ParseAction.accept(), ParseAction.reduce(1))
    assert table.action(conflict.state_id, END_MARKER) == ParseAction.accept()
    assert "accept/reduce conflict" in str(conflict)
    assert run(grammar, table, ["a"]).accepted
