import pytest

from clr_parser import parse_grammar, build_automaton, build_parsing_table


AAB_GRAMMAR = "S -> A A\nA -> a A\nA -> b"

EXPRESSION_GRAMMAR = """
E -> E plus T
E -> T
T -> T times F
T -> F
F -> lp E rp
F -> id
"""


@pytest.fixture
def aab_grammar():
    return parse_grammar(AAB_GRAMMAR)


@pytest.fixture
def aab_automaton(aab_grammar):
    return build_automaton(aab_grammar)


@pytest.fixture
def aab_table(aab_grammar, aab_automaton):
    return build_parsing_table(aab_automaton, aab_grammar)


@pytest.fixture
def expression_grammar():
    return parse_grammar(EXPRESSION_GRAMMAR)
