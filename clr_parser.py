"""
CLR(1) Parser Implementation - Grammar Processing, Automaton and Table Construction

This module implements the canonical LR(1) pipeline end to end:
grammar text -> Grammar -> item closures -> automaton -> parsing tables,
plus a shift-reduce engine that runs token sequences against the tables
and records a human-readable trace.
"""

from dataclasses import dataclass, field
from typing import List, Set, Dict, Tuple, Optional, Iterable, Sequence, Any
from collections import deque
from enum import Enum
import logging
import re


automaton_log = logging.getLogger("clr_parser.automaton")
table_log = logging.getLogger("clr_parser.table")
engine_log = logging.getLogger("clr_parser.engine")


LHS_PATTERN = r"[A-Z][A-Za-z0-9]*"
TERMINAL_RE = re.compile(r"^[a-z0-9]+$")
NONTERMINAL_RE = re.compile(r"^" + LHS_PATTERN + r"$")
PRODUCTION_RE = re.compile(r"^\s*(" + LHS_PATTERN + r")\s*->\s*(.*?)\s*$")

EPSILON_MARKER = "ε"
END_MARKER_NAME = "$"
DOT_MARKER = "•"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class GrammarError(ValueError):
    """Base class for problems found while reading grammar text."""

    def __init__(self, message: str, line_number: int = 0, line: str = ""):
        super().__init__(message)
        self.message = message
        self.line_number = line_number
        self.line = line


class GrammarSyntaxError(GrammarError):
    """A non-blank line is not of the form `LHS -> RHS`."""


class InvalidSymbolError(GrammarError):
    """An RHS token is neither a terminal, a non-terminal nor epsilon."""

    def __init__(self, message: str, symbol: str, line_number: int = 0, line: str = ""):
        super().__init__(message, line_number, line)
        self.symbol = symbol


class EmptyGrammarError(GrammarError):
    """The input contains no production lines at all."""


# ---------------------------------------------------------------------------
# Core data structures
# ---------------------------------------------------------------------------

class SymbolKind(Enum):
    """Classification of a grammar symbol, fixed when the grammar is read."""
    TERMINAL = "terminal"
    NONTERMINAL = "nonterminal"
    EPSILON = "epsilon"


@dataclass(frozen=True)
class Symbol:
    """A grammar symbol tagged with its kind."""
    name: str
    kind: SymbolKind

    def __str__(self) -> str:
        return self.name

    @property
    def is_terminal(self) -> bool:
        return self.kind is SymbolKind.TERMINAL

    @property
    def is_nonterminal(self) -> bool:
        return self.kind is SymbolKind.NONTERMINAL

    @property
    def is_epsilon(self) -> bool:
        return self.kind is SymbolKind.EPSILON


END_MARKER = Symbol(END_MARKER_NAME, SymbolKind.TERMINAL)
EPSILON = Symbol(EPSILON_MARKER, SymbolKind.EPSILON)


def terminal(name: str) -> Symbol:
    return Symbol(name, SymbolKind.TERMINAL)


def nonterminal(name: str) -> Symbol:
    return Symbol(name, SymbolKind.NONTERMINAL)


@dataclass(frozen=True)
class Production:
    """Represents a single production rule in a context-free grammar."""
    lhs: Symbol  # Left-hand side non-terminal
    rhs: Tuple[Symbol, ...]  # Right-hand side symbols, empty for epsilon
    id: int

    def __str__(self) -> str:
        if self.is_epsilon:
            return f"{self.lhs} -> {EPSILON_MARKER}"
        return f"{self.lhs} -> {' '.join(s.name for s in self.rhs)}"

    @property
    def is_epsilon(self) -> bool:
        return not self.rhs


@dataclass(frozen=True)
class Grammar:
    """Represents an augmented context-free grammar."""
    productions: Tuple[Production, ...]
    terminals: Tuple[Symbol, ...]
    nonterminals: Tuple[Symbol, ...]
    start_symbol: Symbol

    def __str__(self) -> str:
        lines = [f"Start Symbol: {self.start_symbol}"]
        lines.append(f"Terminals: {[t.name for t in self.terminals]}")
        lines.append(f"Non-terminals: {[n.name for n in self.nonterminals]}")
        lines.append("Productions:")
        for prod in self.productions:
            lines.append(f"  {prod.id}. {prod}")
        return "\n".join(lines)

    @property
    def augmented_production(self) -> Production:
        return self.productions[0]

    @property
    def original_start_symbol(self) -> Symbol:
        """The first line's LHS, before augmentation."""
        return self.productions[0].rhs[0]

    def productions_for(self, lhs: Symbol) -> List[Production]:
        """All productions whose left-hand side is `lhs`, in id order."""
        return [p for p in self.productions if p.lhs == lhs]

    def symbol(self, name: str) -> Optional[Symbol]:
        """Look up a symbol of this grammar by its name."""
        for sym in self.terminals + self.nonterminals:
            if sym.name == name:
                return sym
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'productions': [
                {'id': p.id, 'lhs': p.lhs.name, 'rhs': [s.name for s in p.rhs], 'text': str(p)}
                for p in self.productions
            ],
            'terminals': [t.name for t in self.terminals],
            'non_terminals': [n.name for n in self.nonterminals],
            'start_symbol': self.start_symbol.name,
        }


@dataclass(frozen=True)
class CLRItem:
    """Represents a CLR item with dot position and lookahead."""
    production: Production
    dot_position: int  # Position of dot in RHS (0 = before first symbol)
    lookahead: Symbol  # Lookahead terminal

    def __str__(self) -> str:
        rhs_with_dot = [s.name for s in self.production.rhs]
        rhs_with_dot.insert(self.dot_position, DOT_MARKER)
        return f"{self.production.lhs} -> {' '.join(rhs_with_dot)}, {self.lookahead}"

    def is_complete(self) -> bool:
        """Check if the dot is at the end of the production."""
        return self.dot_position >= len(self.production.rhs)

    def next_symbol(self) -> Optional[Symbol]:
        """Get the symbol after the dot, or None if at end."""
        if self.is_complete():
            return None
        return self.production.rhs[self.dot_position]

    def advance(self) -> 'CLRItem':
        return CLRItem(self.production, self.dot_position + 1, self.lookahead)

    @property
    def sort_key(self) -> Tuple[int, int, str]:
        return (self.production.id, self.dot_position, self.lookahead.name)


def item_set_signature(items: Iterable[CLRItem]) -> str:
    """Canonical, order-independent text form of an item set."""
    return "|".join(sorted(str(item) for item in items))


@dataclass(frozen=True)
class CLRState:
    """Represents a state in the CLR automaton."""
    state_id: int
    items: Tuple[CLRItem, ...]  # Closure order: kernel first

    def __str__(self) -> str:
        items_str = "\n  ".join(f"[{item}]" for item in self.items)
        return f"State {self.state_id}:\n  {items_str}"

    @property
    def item_set(self) -> frozenset:
        return frozenset(self.items)

    @property
    def signature(self) -> str:
        return item_set_signature(self.items)

    @property
    def kernel(self) -> List[CLRItem]:
        """Items that were not added by closure."""
        return [
            item for item in self.items
            if item.dot_position > 0 or item.production.id == 0
        ]

    @property
    def label(self) -> str:
        """Node label for diagrams: one item per line."""
        return "\n".join(str(item) for item in self.items)


@dataclass(frozen=True)
class Transition:
    """A labelled edge of the automaton."""
    source: int
    target: int
    symbol: Symbol


@dataclass
class CLRAutomaton:
    """Represents the complete CLR automaton."""
    states: List[CLRState]
    edges: List[Transition]
    start_state_id: int = 0
    _index: Dict[Tuple[int, Symbol], int] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self):
        self._index = {(e.source, e.symbol): e.target for e in self.edges}

    def __str__(self) -> str:
        lines = [f"CLR Automaton with {len(self.states)} states"]
        lines.append(f"Start state: {self.start_state_id}")
        lines.append("\nStates:")
        for state in self.states:
            lines.append(str(state))
        lines.append("\nTransitions:")
        for edge in self.edges:
            lines.append(f"  GOTO({edge.source}, {edge.symbol}) = {edge.target}")
        return "\n".join(lines)

    def transition(self, state_id: int, symbol: Symbol) -> Optional[int]:
        return self._index.get((state_id, symbol))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'nodes': [{'id': s.state_id, 'label': s.label} for s in self.states],
            'edges': [
                {'source': e.source, 'target': e.target, 'label': e.symbol.name}
                for e in self.edges
            ],
        }


# ---------------------------------------------------------------------------
# Grammar processing
# ---------------------------------------------------------------------------

class GrammarProcessor:
    """Processes CFG input text and creates Grammar objects."""

    def __init__(self):
        self._symbols: Dict[str, Symbol] = {}
        self._terminals: List[Symbol] = []
        self._nonterminals: List[Symbol] = []

    def parse_grammar(self, cfg_text: str) -> Grammar:
        """
        Parse CFG input text and return an augmented Grammar object.

        Each non-blank line must read `A -> X Y Z`, `A ->` or `A -> ε`.
        The LHS of the first line is the start symbol; production 0 is the
        synthesized `S' -> S`.

        Raises:
            GrammarSyntaxError: a line does not match the production pattern
            InvalidSymbolError: an RHS token is not a valid symbol
            EmptyGrammarError: there are no production lines
        """
        self._reset()

        raw_productions: List[Tuple[Symbol, Tuple[Symbol, ...]]] = []
        for line_number, line in enumerate(cfg_text.splitlines(), 1):
            if not line.strip():
                continue
            raw_productions.append(self._parse_line(line, line_number))

        if not raw_productions:
            raise EmptyGrammarError("Grammar cannot be empty")

        start = raw_productions[0][0]
        augmented_start = Symbol(f"{start.name}'", SymbolKind.NONTERMINAL)

        productions = [Production(lhs=augmented_start, rhs=(start,), id=0)]
        for prod_id, (lhs, rhs) in enumerate(raw_productions, 1):
            productions.append(Production(lhs=lhs, rhs=rhs, id=prod_id))

        return Grammar(
            productions=tuple(productions),
            terminals=tuple(self._terminals) + (END_MARKER,),
            nonterminals=(augmented_start,) + tuple(self._nonterminals),
            start_symbol=augmented_start,
        )

    def _reset(self):
        """Reset internal state for new grammar parsing."""
        self._symbols = {}
        self._terminals = []
        self._nonterminals = []

    def _parse_line(self, line: str, line_number: int) -> Tuple[Symbol, Tuple[Symbol, ...]]:
        match = PRODUCTION_RE.match(line)
        if not match:
            raise GrammarSyntaxError(
                f"Invalid production format on line {line_number}: {line.strip()}",
                line_number, line,
            )

        lhs = self._classify(match.group(1), SymbolKind.NONTERMINAL)
        tokens = match.group(2).split()

        if tokens == [EPSILON_MARKER] or not tokens:
            return lhs, ()
        if EPSILON_MARKER in tokens:
            raise GrammarSyntaxError(
                f"'{EPSILON_MARKER}' must appear alone on the right-hand side (line {line_number})",
                line_number, line,
            )

        rhs = []
        for token in tokens:
            if TERMINAL_RE.match(token):
                rhs.append(self._classify(token, SymbolKind.TERMINAL))
            elif NONTERMINAL_RE.match(token):
                rhs.append(self._classify(token, SymbolKind.NONTERMINAL))
            else:
                raise InvalidSymbolError(
                    f"Invalid symbol in production on line {line_number}: {token}",
                    token, line_number, line,
                )
        return lhs, tuple(rhs)

    def _classify(self, name: str, kind: SymbolKind) -> Symbol:
        # The lexical conventions are disjoint, so a name keeps one kind.
        if name in self._symbols:
            return self._symbols[name]
        sym = Symbol(name, kind)
        self._symbols[name] = sym
        if kind is SymbolKind.TERMINAL:
            self._terminals.append(sym)
        else:
            self._nonterminals.append(sym)
        return sym


def parse_grammar(cfg_text: str) -> Grammar:
    """Parse grammar text into an augmented Grammar."""
    return GrammarProcessor().parse_grammar(cfg_text)


# ---------------------------------------------------------------------------
# FIRST sets
# ---------------------------------------------------------------------------

class FirstSetComputer:
    """Computes FIRST sets for symbols and symbol sequences of one grammar."""

    def __init__(self, grammar: Grammar):
        self.grammar = grammar
        self._first: Dict[Symbol, Set[Symbol]] = self._compute_nonterminal_firsts()

    def _compute_nonterminal_firsts(self) -> Dict[Symbol, Set[Symbol]]:
        """
        FIRST(A) for every non-terminal, by fixed-point iteration.

        Rules:
        1. If A -> epsilon, epsilon is in FIRST(A)
        2. If A -> Y1 Y2 ... Yk, add FIRST(Y1) - {epsilon} to FIRST(A);
           if epsilon in FIRST(Y1), add FIRST(Y2), and so on
        3. If every Yi can derive epsilon, epsilon is in FIRST(A)
        """
        first: Dict[Symbol, Set[Symbol]] = {nt: set() for nt in self.grammar.nonterminals}

        changed = True
        while changed:
            changed = False
            for production in self.grammar.productions:
                before_size = len(first[production.lhs])
                first[production.lhs] |= self._first_of(production.rhs, first)
                if len(first[production.lhs]) > before_size:
                    changed = True

        return first

    @staticmethod
    def _first_of(symbols: Sequence[Symbol], first: Dict[Symbol, Set[Symbol]]) -> Set[Symbol]:
        result: Set[Symbol] = set()
        for symbol in symbols:
            if not symbol.is_nonterminal:
                result.add(symbol)
                return result
            symbol_first = first.get(symbol, set())
            result |= symbol_first - {EPSILON}
            if EPSILON not in symbol_first:
                return result
        result.add(EPSILON)
        return result

    def first(self, symbols: Sequence[Symbol]) -> Set[Symbol]:
        """
        FIRST of a symbol sequence.

        Returns the terminals that can begin a derivation of `symbols`,
        plus epsilon when the whole sequence can derive the empty string.
        """
        return self._first_of(symbols, self._first)

    def first_sets(self) -> Dict[Symbol, Set[Symbol]]:
        return {nt: set(s) for nt, s in self._first.items()}


def first(grammar: Grammar, symbols: Sequence[Symbol]) -> Set[Symbol]:
    """FIRST set of `symbols` in `grammar`."""
    return FirstSetComputer(grammar).first(symbols)


# ---------------------------------------------------------------------------
# Closure, GOTO and the canonical collection
# ---------------------------------------------------------------------------

class CLRItemSetBuilder:
    """Builds CLR item sets and constructs the canonical CLR automaton."""

    def __init__(self, grammar: Grammar, first_computer: Optional[FirstSetComputer] = None):
        self.grammar = grammar
        self.first_computer = first_computer or FirstSetComputer(grammar)

        # Optimization: Pre-compute productions by LHS for faster lookup
        self._productions_by_lhs: Dict[Symbol, List[Production]] = {}
        for production in grammar.productions:
            self._productions_by_lhs.setdefault(production.lhs, []).append(production)

        # Lookaheads are added in the grammar's terminal order
        self._terminal_order = {t: i for i, t in enumerate(grammar.terminals)}

    def closure(self, items: Iterable[CLRItem]) -> Tuple[CLRItem, ...]:
        """
        Compute the closure of a set of CLR items.

        Algorithm:
        1. Start with the given items
        2. For each item [A -> α•Bβ, a] where B is non-terminal:
        3. For each production B -> γ:
        4. For each terminal b in FIRST(βa):
        5. Add item [B -> •γ, b] if not already present
        6. Repeat full passes until a pass adds nothing
        """
        closure_items: List[CLRItem] = []
        seen: Set[CLRItem] = set()
        for item in items:
            if item not in seen:
                seen.add(item)
                closure_items.append(item)

        changed = True
        while changed:
            changed = False

            for item in list(closure_items):
                next_symbol = item.next_symbol()
                if next_symbol is None or not next_symbol.is_nonterminal:
                    continue

                # FIRST(βa) where β follows the non-terminal
                beta = item.production.rhs[item.dot_position + 1:]
                lookaheads = self.first_computer.first(beta + (item.lookahead,))
                lookaheads.discard(EPSILON)
                ordered = sorted(lookaheads, key=lambda t: self._terminal_order.get(t, len(self._terminal_order)))

                for production in self._productions_by_lhs.get(next_symbol, []):
                    for lookahead in ordered:
                        new_item = CLRItem(production, 0, lookahead)
                        if new_item not in seen:
                            seen.add(new_item)
                            closure_items.append(new_item)
                            changed = True

        return tuple(closure_items)

    def goto(self, items: Iterable[CLRItem], symbol: Symbol) -> Tuple[CLRItem, ...]:
        """
        Compute GOTO(I, X).

        Moves the dot past X in every item of I whose next symbol is X,
        then closes the result. Returns an empty tuple when no item moves.
        """
        kernel = [item.advance() for item in items if item.next_symbol() == symbol]
        if not kernel:
            return ()
        return self.closure(kernel)

    def build_clr_automaton(self) -> CLRAutomaton:
        """
        Build the canonical CLR automaton.

        Algorithm:
        1. Create initial state with closure of [S' -> •S, $]
        2. Take states from a FIFO worklist
        3. For each symbol after a dot, compute GOTO and find or create the target
        4. Record an edge for every GOTO, new target or not
        5. Stop when the worklist is empty
        """
        initial_item = CLRItem(self.grammar.augmented_production, 0, END_MARKER)
        initial_state = CLRState(0, self.closure([initial_item]))

        states: List[CLRState] = [initial_state]
        state_map: Dict[str, int] = {initial_state.signature: 0}
        edges: List[Transition] = []

        worklist = deque([initial_state])
        while worklist:
            current_state = worklist.popleft()

            for symbol in self._symbols_after_dot(current_state.items):
                goto_items = self.goto(current_state.items, symbol)
                if not goto_items:
                    continue

                signature = item_set_signature(goto_items)
                target_id = state_map.get(signature)
                if target_id is None:
                    target_id = len(states)
                    target_state = CLRState(target_id, goto_items)
                    states.append(target_state)
                    state_map[signature] = target_id
                    worklist.append(target_state)
                    automaton_log.debug("state %d: %d items via %s from %d",
                                        target_id, len(goto_items), symbol, current_state.state_id)

                edges.append(Transition(current_state.state_id, target_id, symbol))

        automaton_log.info("built CLR automaton: %d states, %d edges", len(states), len(edges))
        return CLRAutomaton(states=states, edges=edges, start_state_id=0)

    @staticmethod
    def _symbols_after_dot(items: Iterable[CLRItem]) -> List[Symbol]:
        """Distinct symbols immediately after a dot, in first-seen order."""
        symbols: List[Symbol] = []
        for item in items:
            next_symbol = item.next_symbol()
            if next_symbol is not None and next_symbol not in symbols:
                symbols.append(next_symbol)
        return symbols


def closure(grammar: Grammar, items: Iterable[CLRItem]) -> Tuple[CLRItem, ...]:
    return CLRItemSetBuilder(grammar).closure(items)


def goto(grammar: Grammar, items: Iterable[CLRItem], symbol: Symbol) -> Tuple[CLRItem, ...]:
    return CLRItemSetBuilder(grammar).goto(items, symbol)


def build_automaton(grammar: Grammar) -> CLRAutomaton:
    """Build the canonical collection of LR(1) states for `grammar`."""
    return CLRItemSetBuilder(grammar).build_clr_automaton()


# ---------------------------------------------------------------------------
# Parsing tables
# ---------------------------------------------------------------------------

class ActionType(Enum):
    """Enumeration of CLR parsing actions."""
    SHIFT = "shift"
    REDUCE = "reduce"
    ACCEPT = "accept"


@dataclass(frozen=True)
class ParseAction:
    """A single ACTION table entry: target state for shift, production id for reduce."""
    action_type: ActionType
    value: Optional[int] = None

    def __str__(self) -> str:
        if self.action_type == ActionType.SHIFT:
            return f"shift {self.value}"
        elif self.action_type == ActionType.REDUCE:
            return f"reduce {self.value}"
        return "accept"

    @property
    def code(self) -> str:
        """Compact form used in rendered tables: s3, r2, acc."""
        if self.action_type == ActionType.SHIFT:
            return f"s{self.value}"
        elif self.action_type == ActionType.REDUCE:
            return f"r{self.value}"
        return "acc"

    @classmethod
    def shift(cls, state_id: int) -> 'ParseAction':
        return cls(ActionType.SHIFT, state_id)

    @classmethod
    def reduce(cls, production_id: int) -> 'ParseAction':
        return cls(ActionType.REDUCE, production_id)

    @classmethod
    def accept(cls) -> 'ParseAction':
        return cls(ActionType.ACCEPT)


@dataclass(frozen=True)
class Conflict:
    """Represents a parsing conflict found while filling the ACTION table."""
    state_id: int
    symbol: Symbol
    conflict_type: str  # "shift/reduce", "reduce/reduce" or "accept/reduce"
    actions: Tuple[ParseAction, ...]  # (kept, discarded)
    description: str

    def __str__(self) -> str:
        return f"{self.conflict_type} conflict in state {self.state_id} on symbol '{self.symbol}': {self.description}"


@dataclass
class ParsingTables:
    """Represents the complete set of CLR parsing tables."""
    action_table: Dict[Tuple[int, Symbol], ParseAction]  # (state, terminal) -> action
    goto_table: Dict[Tuple[int, Symbol], int]  # (state, non_terminal) -> state
    terminals: List[Symbol]
    nonterminals: List[Symbol]  # Excludes the augmented start symbol
    states: List[int]
    conflicts: List[Conflict] = field(default_factory=list)

    def __str__(self) -> str:
        lines = ["Parsing Tables:"]
        lines.append("\nAction Table:")
        for (state, term), action in sorted(self.action_table.items(), key=lambda kv: (kv[0][0], kv[0][1].name)):
            lines.append(f"  ACTION[{state}, {term}] = {action}")
        lines.append("\nGoto Table:")
        for (state, non_terminal), target in sorted(self.goto_table.items(), key=lambda kv: (kv[0][0], kv[0][1].name)):
            lines.append(f"  GOTO[{state}, {non_terminal}] = {target}")
        return "\n".join(lines)

    def action(self, state_id: int, symbol: Symbol) -> Optional[ParseAction]:
        return self.action_table.get((state_id, symbol))

    def goto(self, state_id: int, symbol: Symbol) -> Optional[int]:
        return self.goto_table.get((state_id, symbol))

    def to_dict(self) -> Dict[str, Any]:
        actions: Dict[str, Dict[str, str]] = {str(s): {} for s in self.states}
        gotos: Dict[str, Dict[str, int]] = {str(s): {} for s in self.states}
        for (state, term), action in self.action_table.items():
            actions[str(state)][term.name] = action.code
        for (state, non_terminal), target in self.goto_table.items():
            gotos[str(state)][non_terminal.name] = target
        return {
            'terminals': [t.name for t in self.terminals],
            'non_terminals': [n.name for n in self.nonterminals],
            'states': list(self.states),
            'action': actions,
            'goto': gotos,
        }


class CLRTableGenerator:
    """Generates CLR parsing tables from a CLR automaton."""

    def __init__(self, grammar: Grammar, automaton: CLRAutomaton):
        self.grammar = grammar
        self.automaton = automaton
        self.action_table: Dict[Tuple[int, Symbol], ParseAction] = {}
        self.goto_table: Dict[Tuple[int, Symbol], int] = {}
        self.conflicts: List[Conflict] = []

    def generate_parsing_tables(self) -> ParsingTables:
        """
        Generate both action and goto tables from the CLR automaton.

        Returns:
            ParsingTables object containing both tables and any conflicts
        """
        self._reset_tables()
        self.generate_goto_and_shift_entries()
        self.generate_reduce_entries()

        return ParsingTables(
            action_table=dict(self.action_table),
            goto_table=dict(self.goto_table),
            terminals=list(self.grammar.terminals),
            nonterminals=[nt for nt in self.grammar.nonterminals if nt != self.grammar.start_symbol],
            states=[state.state_id for state in self.automaton.states],
            conflicts=list(self.conflicts),
        )

    def generate_goto_and_shift_entries(self):
        """Shift on terminal edges, GOTO on non-terminal edges."""
        for edge in self.automaton.edges:
            if edge.symbol.is_terminal:
                self.action_table[(edge.source, edge.symbol)] = ParseAction.shift(edge.target)
            elif edge.symbol.is_nonterminal:
                self.goto_table[(edge.source, edge.symbol)] = edge.target

    def generate_reduce_entries(self):
        """
        Reduce and accept entries from complete items.

        - [S' -> S•, $] gives ACTION[i, $] = accept
        - [A -> α•, a] gives ACTION[i, a] = reduce A -> α, unless a shift
          already occupies the cell (shift wins); a reduce from another
          production is overwritten (last write wins); accept is never
          replaced. All three cases are recorded as conflicts.
        """
        for state in self.automaton.states:
            complete_items = sorted((item for item in state.items if item.is_complete()),
                                    key=lambda item: item.sort_key)
            for item in complete_items:
                key = (state.state_id, item.lookahead)
                if item.production.id == 0 and item.lookahead == END_MARKER:
                    self.action_table[key] = ParseAction.accept()
                    continue

                action = ParseAction.reduce(item.production.id)
                existing = self.action_table.get(key)
                if existing is None or existing == action:
                    self.action_table[key] = action
                elif existing.action_type == ActionType.SHIFT:
                    self._record_conflict(state.state_id, item.lookahead, "shift/reduce", existing, action)
                elif existing.action_type == ActionType.REDUCE:
                    self._record_conflict(state.state_id, item.lookahead, "reduce/reduce", action, existing)
                    self.action_table[key] = action
                elif existing.action_type == ActionType.ACCEPT:
                    self._record_conflict(state.state_id, item.lookahead, "accept/reduce", existing, action)

    def _record_conflict(self, state_id: int, symbol: Symbol, conflict_type: str,
                         kept: ParseAction, discarded: ParseAction):
        conflict = Conflict(
            state_id=state_id,
            symbol=symbol,
            conflict_type=conflict_type,
            actions=(kept, discarded),
            description=f"kept {kept}, discarded {discarded}",
        )
        table_log.warning("%s", conflict)
        self.conflicts.append(conflict)

    def _reset_tables(self):
        """Reset internal table state for fresh generation."""
        self.action_table.clear()
        self.goto_table.clear()
        self.conflicts.clear()


def build_parsing_table(automaton: CLRAutomaton, grammar: Grammar) -> ParsingTables:
    """Derive the ACTION/GOTO tables for `automaton`."""
    return CLRTableGenerator(grammar, automaton).generate_parsing_tables()


# ---------------------------------------------------------------------------
# Parsing engine
# ---------------------------------------------------------------------------

@dataclass
class ParseTreeNode:
    """Represents a node in the parse tree."""
    label: str
    children: List['ParseTreeNode'] = field(default_factory=list)
    is_terminal: bool = False

    def __str__(self) -> str:
        if self.is_terminal:
            return self.label
        if not self.children:
            return f"({self.label})"
        return f"({self.label} {' '.join(str(child) for child in self.children)})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'label': self.label,
            'is_terminal': self.is_terminal,
            'children': [child.to_dict() for child in self.children],
        }


@dataclass
class ParseStep:
    """Represents a single step in the parsing trace."""
    step_number: int
    stack: List[str]  # Alternating state ids and symbols, bottom first
    input_buffer: List[str]  # Remaining input, including $
    action: str
    message: str = ""

    def __str__(self) -> str:
        text = (f"Step {self.step_number}: Stack=[{' '.join(self.stack)}] "
                f"Input=[{' '.join(self.input_buffer)}] Action={self.action}")
        if self.message:
            text += f" ({self.message})"
        return text


@dataclass
class ParseResult:
    """Represents the result of running the engine over a token sequence."""
    accepted: bool
    trace: List[str] = field(default_factory=list)
    steps: List[ParseStep] = field(default_factory=list)
    error_message: str = ""
    error_position: int = -1
    parse_tree: Optional[ParseTreeNode] = None

    def __str__(self) -> str:
        if self.accepted:
            return f"Parse successful. Tree: {self.parse_tree}"
        return f"Parse failed: {self.error_message} at position {self.error_position}"


class CLRParsingEngine:
    """
    Stack-based CLR parsing engine.

    The stack alternates symbols and state ids on top of state 0. Rejections
    (no action, missing goto, stack underflow) are ordinary results with
    `accepted=False`, never exceptions. Tables are only read, so one engine
    may run any number of inputs.

    A table with a reduce cycle (from a reduce/reduce conflict) would reduce
    forever on one lookahead; a stack that repeats between two shifts is
    rejected. `max_steps` optionally caps the trace length as well.
    """

    def __init__(self, grammar: Grammar, parsing_tables: ParsingTables, max_steps: Optional[int] = None):
        self.grammar = grammar
        self.parsing_tables = parsing_tables
        self.max_steps = max_steps
        self._productions = {p.id: p for p in grammar.productions}

    def parse(self, input_string: str) -> ParseResult:
        """Run whitespace-separated tokens from `input_string`."""
        return self.parse_tokens(input_string.split())

    def parse_tokens(self, tokens: Sequence[str]) -> ParseResult:
        """
        Run the shift-reduce loop over `tokens`.

        Args:
            tokens: terminal names, without the end marker

        Returns:
            ParseResult with the outcome and one trace entry per step
        """
        symbols = [self._terminal(token) for token in tokens] + [END_MARKER]

        stack: List[Any] = [0]  # state, symbol, state, symbol, state ...
        tree_stack: List[ParseTreeNode] = []
        result = ParseResult(accepted=False)
        cursor = 0
        seen_since_shift: Set[Tuple[Any, ...]] = set()

        while True:
            if self.max_steps is not None and len(result.steps) >= self.max_steps:
                return self._reject(
                    result, stack, symbols, cursor,
                    f"step limit of {self.max_steps} exceeded",
                )

            current_state = stack[-1]
            current_symbol = symbols[cursor]
            action = self.parsing_tables.action(current_state, current_symbol)

            if action is None:
                return self._reject(
                    result, stack, symbols, cursor,
                    f"no action for state {current_state} on '{current_symbol}'",
                )

            if action.action_type == ActionType.ACCEPT:
                if cursor != len(symbols) - 1:
                    return self._reject(
                        result, stack, symbols, cursor,
                        f"end marker at position {cursor} before the end of input",
                    )
                self._record(result, stack, symbols, cursor, "accept", "input accepted")
                result.accepted = True
                result.parse_tree = tree_stack[-1] if tree_stack else None
                return result

            if action.action_type == ActionType.SHIFT:
                self._record(result, stack, symbols, cursor, str(action),
                             f"shift '{current_symbol}' and go to state {action.value}")
                stack.append(current_symbol)
                stack.append(action.value)
                tree_stack.append(ParseTreeNode(label=current_symbol.name, is_terminal=True))
                cursor += 1
                seen_since_shift.clear()
                continue

            production = self._productions[action.value]
            pop_count = 2 * len(production.rhs)
            if pop_count > len(stack) - 1:
                return self._reject(
                    result, stack, symbols, cursor,
                    f"stack underflow reducing by {production}",
                )

            exposed_state = stack[-1 - pop_count]
            target = self.parsing_tables.goto(exposed_state, production.lhs)
            if target is None:
                return self._reject(
                    result, stack, symbols, cursor,
                    f"no goto for state {exposed_state} on '{production.lhs}'",
                )

            self._record(result, stack, symbols, cursor, str(action),
                         f"reduce by {production}, goto state {target}")

            if pop_count:
                del stack[-pop_count:]
            children: List[ParseTreeNode] = []
            if production.rhs:
                children = tree_stack[-len(production.rhs):]
                del tree_stack[-len(production.rhs):]
            tree_stack.append(ParseTreeNode(label=production.lhs.name, children=children))

            stack.append(production.lhs)
            stack.append(target)

            snapshot = tuple(stack)
            if snapshot in seen_since_shift:
                return self._reject(
                    result, stack, symbols, cursor,
                    f"reduce cycle in state {target} on '{current_symbol}'",
                )
            seen_since_shift.add(snapshot)

    def _terminal(self, token: str) -> Symbol:
        sym = self.grammar.symbol(token)
        if sym is not None and sym.is_terminal:
            return sym
        # Unknown names still act as terminals; the table has no entry for them.
        return terminal(token)

    def _record(self, result: ParseResult, stack: List[Any], symbols: List[Symbol],
                cursor: int, action: str, message: str):
        step = ParseStep(
            step_number=len(result.steps) + 1,
            stack=[str(entry) for entry in stack],
            input_buffer=[s.name for s in symbols[cursor:]],
            action=action,
            message=message,
        )
        result.steps.append(step)
        result.trace.append(str(step))
        if engine_log.isEnabledFor(logging.DEBUG):
            engine_log.debug("%s", step)

    def _reject(self, result: ParseResult, stack: List[Any], symbols: List[Symbol],
                cursor: int, message: str) -> ParseResult:
        self._record(result, stack, symbols, cursor, "error", message)
        result.accepted = False
        result.error_message = message
        result.error_position = cursor
        return result


def run(grammar: Grammar, table: ParsingTables, tokens: Sequence[str],
        max_steps: Optional[int] = None) -> ParseResult:
    """Recognize `tokens` against `table`."""
    return CLRParsingEngine(grammar, table, max_steps).parse_tokens(tokens)


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------

class CLRParserWorkflow:
    """
    Runs the whole pipeline for one grammar and serves repeated validations.

    The grammar, automaton and tables are built once in the constructor;
    `GrammarError` propagates from there if the text is invalid.
    """

    def __init__(self, cfg_text: str, max_steps: Optional[int] = None):
        self.cfg_text = cfg_text
        self.grammar = parse_grammar(cfg_text)
        self.automaton = build_automaton(self.grammar)
        self.parsing_tables = build_parsing_table(self.automaton, self.grammar)
        self.parsing_engine = CLRParsingEngine(self.grammar, self.parsing_tables, max_steps)

    def describe(self) -> Dict[str, Any]:
        return {
            'grammar': self.grammar.to_dict(),
            'automaton': self.automaton.to_dict(),
            'table': self.parsing_tables.to_dict(),
            'conflicts': [str(conflict) for conflict in self.parsing_tables.conflicts],
            'table_info': {
                'states_count': len(self.automaton.states),
                'edges_count': len(self.automaton.edges),
                'action_entries': len(self.parsing_tables.action_table),
                'goto_entries': len(self.parsing_tables.goto_table),
                'conflicts_count': len(self.parsing_tables.conflicts),
            },
        }

    def validate(self, input_string: str) -> Dict[str, Any]:
        result = self.parsing_engine.parse(input_string)
        return {
            'accepted': result.accepted,
            'trace': result.trace,
            'trace_steps': len(result.trace),
            'error_message': result.error_message,
            'error_position': result.error_position,
            'parse_tree': result.parse_tree.to_dict() if result.parse_tree else None,
        }
