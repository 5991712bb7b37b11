import pytest

from clr_parser import (
    END_MARKER,
    EmptyGrammarError,
    GrammarError,
    GrammarSyntaxError,
    InvalidSymbolError,
    SymbolKind,
    nonterminal,
    parse_grammar,
    terminal,
)


def test_augmented_production_is_first(aab_grammar):
    prod = aab_grammar.productions[0]
    assert prod.id == 0
    assert prod.lhs == nonterminal("S'")
    assert prod.rhs == (nonterminal("S"),)
    assert aab_grammar.start_symbol == nonterminal("S'")
    assert aab_grammar.original_start_symbol == nonterminal("S")


def test_production_ids_follow_source_order(aab_grammar):
    assert [p.id for p in aab_grammar.productions] == [0, 1, 2, 3]
    assert [str(p) for p in aab_grammar.productions] == [
        "S' -> S",
        "S -> A A",
        "A -> a A",
        "A -> b",
    ]


def test_symbols_are_classified(aab_grammar):
    assert aab_grammar.terminals == (terminal("a"), terminal("b"), END_MARKER)
    assert aab_grammar.nonterminals == (nonterminal("S'"), nonterminal("S"), nonterminal("A"))
    assert not set(aab_grammar.terminals) & set(aab_grammar.nonterminals)
    assert aab_grammar.symbol("a").kind is SymbolKind.TERMINAL
    assert aab_grammar.symbol("A").kind is SymbolKind.NONTERMINAL
    assert aab_grammar.symbol("missing") is None


def test_every_symbol_is_covered(expression_grammar):
    known = set(expression_grammar.terminals) | set(expression_grammar.nonterminals)
    for prod in expression_grammar.productions:
        assert prod.lhs in known
        for sym in prod.rhs:
            assert sym in known


def test_lhs_only_symbol_is_nonterminal():
    grammar = parse_grammar("S -> a\nX -> b")
    assert nonterminal("X") in grammar.nonterminals


def test_digit_terminals():
    grammar = parse_grammar("S -> 1 x2 S\nS -> 0")
    assert terminal("1") in grammar.terminals
    assert terminal("x2") in grammar.terminals
    assert terminal("0") in grammar.terminals


@pytest.mark.parametrize("text", ["S -> ε", "S ->", "S ->   "])
def test_epsilon_productions(text):
    grammar = parse_grammar(text)
    prod = grammar.productions[1]
    assert prod.rhs == ()
    assert prod.is_epsilon
    assert str(prod) == "S -> ε"


def test_blank_lines_are_skipped():
    grammar = parse_grammar("\nS -> a\n\n   \nS -> b\n")
    assert [p.id for p in grammar.productions] == [0, 1, 2]


def test_duplicate_productions_keep_distinct_ids():
    grammar = parse_grammar("S -> a\nS -> a")
    assert [p.id for p in grammar.productions] == [0, 1, 2]
    assert grammar.productions[1].rhs == grammar.productions[2].rhs


@pytest.mark.parametrize("text, line_number", [
    ("S -> a\nlower -> b", 2),
    ("S => a", 1),
    ("S a -> b", 1),
    ("-> a", 1),
    ("S -> a ε", 1),
])
def test_syntax_errors(text, line_number):
    with pytest.raises(GrammarSyntaxError) as info:
        parse_grammar(text)
    assert info.value.line_number == line_number


@pytest.mark.parametrize("text, symbol", [
    ("S -> a | b", "|"),
    ("S -> A_b", "A_b"),
    ("S -> aB", "aB"),
    ("S -> a +", "+"),
])
def test_invalid_symbols(text, symbol):
    with pytest.raises(InvalidSymbolError) as info:
        parse_grammar(text)
    assert info.value.symbol == symbol
    assert info.value.line_number == 1


@pytest.mark.parametrize("text", ["", "\n", "   \n\t\n"])
def test_empty_grammar(text):
    with pytest.raises(EmptyGrammarError):
        parse_grammar(text)


def test_grammar_errors_share_a_base_class():
    for text in ("s -> a", "S -> +", ""):
        with pytest.raises(GrammarError):
            parse_grammar(text)


def test_grammar_to_dict(aab_grammar):
    data = aab_grammar.to_dict()
    assert data['start_symbol'] == "S'"
    assert data['terminals'] == ["a", "b", "$"]
    assert data['non_terminals'] == ["S'", "S", "A"]
    assert data['productions'][2] == {'id': 2, 'lhs': "A", 'rhs': ["a", "A"], 'text': "A -> a A"}
