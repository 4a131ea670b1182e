"""
script_interpreter.py

Line-oriented interpreter for a small C++-like subset.

ScriptInterpreter recognizes declarations, ``new``/``delete``, smart-pointer
construction, assignments, scope braces and class definitions, and turns
each of them into MemoryManager calls. There is no grammar and no AST: every
line is classified by an ordered table of (predicate, handler) rules and the
first matching rule wins.

Rule order:
    1. class-declaration    ``class X {`` / ``struct X {``
    2. class-body           members, access specifiers, ``};``
    3. function-start       ``int main() {``
    4. return               accepted, not modeled
    5. scope                ``{`` / ``}``; ``}`` leaves one local
    6. outside-function     everything else outside main is ignored
    7. delete               ``delete p;`` / ``delete[] p;``
    8. new                  ``T* p = new T;`` / ``p = new T[n];``
    9. smart-pointer        ``unique_ptr<T>`` / ``shared_ptr<T>`` / factories
    10. assignment          declaration with initializer or plain assignment
    11. declaration         ``T name;`` / ``T* name;`` / ``Class obj;``
    12. fallback            anything else is a no-op

Example:
    >>> interpreter = ScriptInterpreter()
    >>> interpreter.execute('''
    ... int main() {
    ...     int* ptr = new int;
    ...     return 0;
    ... }
    ... ''')
    True
    >>> len(interpreter.manager.detect_leaks())
    1
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from memory_manager import MemoryManager
from memory_model import ClassLayout, Discipline, MemoryBlock, SimulatorConfig

logger = logging.getLogger(__name__)


# ============================================================
#  Errors & steps
# ============================================================

class ScriptError(Exception):
    """A line could not be executed; aborts the rest of the script.

    Attributes:
        reason: Human-readable reason
        line_no: 1-based line number, once known
    """

    def __init__(self, reason: str, line_no: Optional[int] = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.line_no = line_no

    def __str__(self) -> str:
        if self.line_no is None:
            return self.reason
        return f"Line {self.line_no}: {self.reason}"


@dataclass(frozen=True)
class ScriptStep:
    """One line about to be executed.

    Attributes:
        line_no: 1-based line number in the script
        text: The raw line as written
        statement: The line with comments and surrounding whitespace removed
    """
    line_no: int
    text: str
    statement: str


@dataclass(frozen=True)
class Rule:
    """One entry of the classification table."""
    name: str
    matches: Callable[[str], bool]
    apply: Callable[[str], None]


# ============================================================
#  Lexical helpers
# ============================================================

_TOKEN_RE = re.compile(r"[^\s;{}]+|[;{}]")
_IDENT_RE = re.compile(r"[A-Za-z_]\w*")
_CLASS_DECL_RE = re.compile(
    r"^(?:class|struct)\s+([A-Za-z_]\w*)\s*(?::[^{;]*)?(\{.*)?$"
)
_ACCESS_RE = re.compile(r"^(?:public|private|protected)\s*:\s*")
_MAIN_RE = re.compile(r"\b(?:int|void)\s+main\s*\(")
_RETURN_RE = re.compile(r"^return\b")
_DELETE_RE = re.compile(r"^delete(?:\s*(\[\s*\])\s*|\s+)(.*?)\s*;?$")
_NEW_RE = re.compile(r"=\s*new\b")
_NEW_EXPR_RE = re.compile(
    r"^new\s+([A-Za-z_]\w*)\s*(?:\((.*)\)|\[\s*([^\]]*?)\s*\])?\s*;?$"
)
_SMART_RE = re.compile(r"\b(?:unique_ptr|shared_ptr|make_unique|make_shared)\b")
_SMART_DECL_RE = re.compile(
    r"^(?:std::)?(unique_ptr|shared_ptr)\s*<\s*([A-Za-z_]\w*)\s*>\s*([A-Za-z_]\w*)"
    r"\s*(?:=\s*(?P<init>.*?)|\((?P<ctor>.*)\))?\s*;?$"
)
_AUTO_RE = re.compile(r"^auto\s+([A-Za-z_]\w*)\s*=\s*(.+?)\s*;?$")
_FACTORY_RE = re.compile(
    r"^(?:std::)?(make_unique|make_shared)\s*<\s*([A-Za-z_]\w*)\s*>\s*\(.*\)$"
)
_MOVE_RE = re.compile(r"^(?:std::)?move\s*\(\s*([A-Za-z_]\w*)\s*\)$")
_ASSIGN_RE = re.compile(r"^(?P<left>[^=]*?)(?<![=!<>+\-*/%&|^])=(?!=)(?P<right>.*)$")
_DECL_HEAD_RE = re.compile(r"^([A-Za-z_][\w:]*)\s*(\**)\s*(.+)$")
_DECLARATOR_RE = re.compile(r"(\**)\s*([A-Za-z_]\w*)\s*(?:\[\s*(\w*)\s*\])?")
_QUALIFIERS = ("const", "static", "volatile", "unsigned", "signed", "struct", "class", "mutable")
_NULL_LITERALS = ("nullptr", "NULL", "0")


def strip_comments(line: str) -> str:
    """Remove ``//`` comments and the first ``/* ... */`` span of one line."""
    slash = line.find("//")
    if slash != -1:
        line = line[:slash]
    start = line.find("/*")
    end = line.find("*/", start + 2) if start != -1 else -1
    if start != -1 and end != -1:
        line = line[:start] + line[end + 2:]
    return line


def tokenize(line: str) -> List[str]:
    """Split on whitespace; ``;``, ``{`` and ``}`` are tokens of their own."""
    return _TOKEN_RE.findall(line)


def strip_qualifiers(text: str) -> str:
    """Drop leading qualifiers such as ``const`` or ``struct``."""
    words = text.split()
    while len(words) > 1 and words[0] in _QUALIFIERS:
        words.pop(0)
    return " ".join(words)


def _strip_semicolon(text: str) -> str:
    text = text.strip()
    while text.endswith(";"):
        text = text[:-1].rstrip()
    return text


def _is_identifier(text: str) -> bool:
    return _IDENT_RE.fullmatch(text) is not None


def _looks_like_declaration(text: str) -> bool:
    """``T name`` or ``T* name`` / ``T *name`` shape."""
    head = _DECL_HEAD_RE.match(text)
    return head is not None and (bool(head.group(2)) or len(text.split()) >= 2)


# ============================================================
#  Interpreter
# ============================================================

class ScriptInterpreter:
    """Executes scripts line by line against a MemoryManager.

    The interpreter owns the variable table (name -> block id) and the class
    table (name -> ClassLayout); the manager owns every block.
    """

    def __init__(
        self,
        manager: Optional[MemoryManager] = None,
        config: Optional[SimulatorConfig] = None,
    ) -> None:
        """Initialize the interpreter.

        Args:
            manager: Memory manager to drive (a new one if None)
            config: Configuration for a newly created manager
        """
        self.manager = manager if manager is not None else MemoryManager(config)
        self.config = self.manager.config
        self._variables: Dict[str, int] = {}
        self._classes: Dict[str, ClassLayout] = {}
        self._open_class: Optional[ClassLayout] = None
        self._body_depth = 0
        self._scope_depth = 0
        self._in_function = False
        self._last_error = ""
        self._rules: List[Rule] = [
            Rule("class-declaration", self._is_class_declaration, self._parse_class_declaration),
            Rule("class-body", lambda s: self._open_class is not None, self._parse_class_line),
            Rule("function-start", lambda s: _MAIN_RE.search(s) is not None, self._parse_function_start),
            Rule("return", lambda s: _RETURN_RE.match(s) is not None, self._ignore),
            Rule("scope", self._is_scope, self._parse_scope),
            Rule("outside-function", lambda s: not self._in_function, self._ignore),
            Rule("delete", lambda s: _DELETE_RE.match(s) is not None, self._parse_delete),
            Rule("new", lambda s: _NEW_RE.search(s) is not None, self._parse_new),
            Rule("smart-pointer", lambda s: _SMART_RE.search(s) is not None, self._parse_smart_pointer),
            Rule("assignment", lambda s: _ASSIGN_RE.match(s) is not None, self._parse_assignment),
            Rule("declaration", self._is_declaration, self._parse_declaration),
            Rule("fallback", lambda s: True, self._ignore),
        ]

    # ------------- Accessors ------------- #

    @property
    def last_error(self) -> str:
        """Message of the most recent failed line ("" if none)."""
        return self._last_error

    @property
    def scope_depth(self) -> int:
        return self._scope_depth

    @property
    def in_function(self) -> bool:
        return self._in_function

    @property
    def in_class(self) -> bool:
        return self._open_class is not None

    @property
    def variables(self) -> Dict[str, int]:
        return dict(self._variables)

    @property
    def classes(self) -> Dict[str, ClassLayout]:
        return dict(self._classes)

    def variable_id(self, name: str) -> Optional[int]:
        """Block id currently bound to a name, or None."""
        return self._variables.get(name)

    def variable_block(self, name: str) -> Optional[MemoryBlock]:
        """Block currently bound to a name, or None."""
        return self.manager.get_block(self._variables.get(name))

    def class_layout(self, name: str) -> Optional[ClassLayout]:
        """Class layout by name, or None."""
        return self._classes.get(name)

    def rule_names(self) -> List[str]:
        """Names of the classification rules in priority order."""
        return [rule.name for rule in self._rules]

    def classify(self, statement: str) -> str:
        """Name of the rule that would handle a statement in the current state."""
        return self._match(statement).name

    # ------------- Execution ------------- #

    def execute(self, script: str) -> bool:
        """Run a whole script; stop at the first failing line.

        Returns:
            True on success; on failure ``last_error`` holds "Line N: reason"
        """
        self._last_error = ""
        try:
            for _ in self.step_through(script):
                pass
        except ScriptError as exc:
            self._fail(exc)
            return False
        return True

    def execute_stepwise(self, script: str, callback: Callable[[str, int], None]) -> bool:
        """Run a script one line at a time.

        ``callback(line_text, line_no)`` is invoked before each line takes
        effect. After the last line every remaining stack block is released,
        as if the program had ended.

        Returns:
            True on success; on failure ``last_error`` holds "Line N: reason"
        """
        self._last_error = ""
        try:
            for step in self.step_through(script):
                callback(step.text, step.line_no)
        except ScriptError as exc:
            self._fail(exc)
            return False
        self.manager.unwind()
        return True

    def step_through(self, script: str) -> Iterator[ScriptStep]:
        """Yield each line before executing it.

        The line takes effect when the generator is resumed, so a caller can
        inspect the state in between. Stopping iteration stops the script.

        Raises:
            ScriptError: With ``line_no`` set, when a line fails
        """
        for line_no, raw in enumerate(script.splitlines(), start=1):
            statement = strip_comments(raw).strip()
            if not statement:
                continue
            yield ScriptStep(line_no=line_no, text=raw, statement=statement)
            try:
                self._apply(statement)
            except ScriptError as exc:
                exc.line_no = line_no
                raise
            self.manager.advance()

    def execute_line(self, line: str) -> bool:
        """Execute a single line.

        Returns:
            True on success; on failure ``last_error`` holds the reason
        """
        statement = strip_comments(line).strip()
        if not statement:
            return True
        try:
            self._apply(statement)
        except ScriptError as exc:
            self._fail(exc)
            return False
        return True

    def reset(self) -> None:
        """Clear every table and the memory manager."""
        self._variables.clear()
        self._classes.clear()
        self._open_class = None
        self._body_depth = 0
        self._scope_depth = 0
        self._in_function = False
        self._last_error = ""
        self.manager.reset()

    def _match(self, statement: str) -> Rule:
        for rule in self._rules:
            if rule.matches(statement):
                return rule
        return self._rules[-1]

    def _apply(self, statement: str) -> None:
        rule = self._match(statement)
        logger.debug("%-17s %s", rule.name, statement)
        rule.apply(statement)

    def _fail(self, exc: ScriptError) -> None:
        self._last_error = str(exc)
        logger.warning("script aborted: %s", exc)

    def _ignore(self, statement: str) -> None:
        pass

    # ------------- Name resolution ------------- #

    def _bind(self, name: str, block_id: int) -> int:
        self._variables[name] = block_id
        return block_id

    def _lookup(self, name: str) -> Tuple[int, MemoryBlock]:
        """Resolve a name to its live block."""
        block_id = self._variables.get(name)
        if block_id is None:
            raise ScriptError(f"Undefined variable: {name}")
        block = self.manager.get_block(block_id)
        if block is None or not block.is_allocated:
            raise ScriptError(f"Variable is out of scope: {name}")
        return block_id, block

    def _lookup_pointer(self, name: str) -> Tuple[int, MemoryBlock]:
        block_id, block = self._lookup(name)
        if block.pointer is None:
            raise ScriptError(f"Variable is not a pointer: {name}")
        return block_id, block

    def _type_size(self, type_name: str) -> int:
        """Size of a basic type or a closed class.

        Raises:
            ScriptError: For an unknown or incomplete type
        """
        layout = self._classes.get(type_name)
        if layout is not None:
            if not layout.closed:
                raise ScriptError(f"Incomplete type: {type_name}")
            return layout.total_size
        if self.config.is_basic_type(type_name):
            return self.config.sizeof(type_name)
        raise ScriptError(f"Unknown type: {type_name}")

    # ------------- Classes ------------- #

    def _is_class_declaration(self, statement: str) -> bool:
        return _CLASS_DECL_RE.match(statement) is not None

    def _parse_class_declaration(self, statement: str) -> None:
        match = _CLASS_DECL_RE.match(statement)
        name, body = match.group(1), match.group(2)
        if name in self._classes:
            raise ScriptError(f"Class already defined: {name}")

        layout = ClassLayout(name)
        self._classes[name] = layout
        self._open_class = layout
        self._body_depth = 0
        logger.debug("class %s opened", name)

        if body:
            # one-line definition: class X { int a; int b; };
            inner = body[1:]
            closing = inner.find("}")
            if closing != -1:
                inner = inner[:closing]
            for member in inner.split(";"):
                if member.strip():
                    self._parse_class_line(member.strip() + ";")
            if closing != -1:
                self._close_class()

    def _close_class(self) -> None:
        layout = self._open_class
        layout.close()
        self._open_class = None
        logger.debug("class %s closed (%d bytes)", layout.name, layout.total_size)

    def _parse_class_line(self, statement: str) -> None:
        layout = self._open_class
        statement = _ACCESS_RE.sub("", statement, count=1).strip()
        if self._body_depth > 0:
            # inside a method body
            self._body_depth = max(0, self._body_depth + statement.count("{") - statement.count("}"))
            return
        if not statement or statement in ("{", "}"):
            return
        if re.fullmatch(r"}\s*;", statement):
            self._close_class()
            return
        self._body_depth = max(0, statement.count("{") - statement.count("}"))
        if re.match(rf"(?:virtual\s+)?~\s*{layout.name}\s*\(", statement):
            layout.has_destructor = True
            return
        if re.match(rf"(?:explicit\s+)?{layout.name}\s*\(", statement):
            layout.has_constructor = True
            return
        if "(" in statement:
            # method declaration or definition
            return
        self._parse_member(layout, _strip_semicolon(strip_qualifiers(statement)))

    def _parse_member(self, layout: ClassLayout, text: str) -> None:
        head = _DECL_HEAD_RE.match(text)
        if head is None:
            raise ScriptError(f"Invalid member declaration: {text}")
        type_name, stars, rest = head.groups()
        # default member initializers carry no modeled effect
        rest = re.sub(r"\{[^{}]*\}", "", rest)
        for index, declarator in enumerate(rest.split(",")):
            match = _DECLARATOR_RE.fullmatch(declarator.split("=", 1)[0].strip())
            if match is None:
                raise ScriptError(f"Invalid member declaration: {text}")
            # stars written after the type bind to the first declarator only
            is_pointer = bool(match.group(1)) or (index == 0 and bool(stars))
            member = match.group(2)
            count = self._array_count(match.group(3))
            if is_pointer:
                size = self.config.pointer_size
                member_type = f"{type_name}*"
            else:
                if type_name == layout.name:
                    raise ScriptError(f"Class {layout.name} cannot contain itself")
                size = self._type_size(type_name)
                member_type = type_name
            layout.add_member(member, member_type, size * count)

    # ------------- Function & scope ------------- #

    def _parse_function_start(self, statement: str) -> None:
        self._in_function = True
        self._scope_depth = 1 if "{" in statement else 0

    def _is_scope(self, statement: str) -> bool:
        if statement in ("{", "}"):
            return True
        # control-flow headers (if/for/while/else) open a scope too
        return self._in_function and (statement.endswith("{") or statement.startswith("}"))

    def _parse_scope(self, statement: str) -> None:
        if statement.startswith("}"):
            self._leave_scope()
        if statement.endswith("{"):
            self._scope_depth += 1

    def _leave_scope(self) -> None:
        if self._scope_depth <= 0:
            raise ScriptError("Unexpected scope end")
        self._scope_depth -= 1
        self.manager.end_scope()
        if self._scope_depth == 0 and self._in_function:
            self._in_function = False

    # ------------- new / delete ------------- #

    def _parse_delete(self, statement: str) -> None:
        name = _DELETE_RE.match(statement).group(2)
        if not _is_identifier(name):
            raise ScriptError(f"Invalid delete statement: {statement}")
        pointer_id, pointer = self._lookup_pointer(name)
        if pointer.pointer.discipline is not Discipline.RAW:
            raise ScriptError(f"Cannot delete a smart pointer: {name}")
        if pointer.pointer.is_null:
            raise ScriptError(f"Cannot delete null pointer: {name}")
        target = self.manager.get_block(pointer.pointer.target)
        if target is None or not target.is_heap:
            raise ScriptError(f"Cannot delete memory that was not allocated with new: {name}")
        if not self.manager.deallocate(target.id):
            raise ScriptError(f"Double delete: {name}")
        self.manager.assign_pointer(pointer_id, None)

    def _parse_new(self, statement: str) -> None:
        left, right = statement.split("=", 1)
        left = left.strip()
        expr = _NEW_EXPR_RE.match(_strip_semicolon(right))
        if expr is None:
            raise ScriptError(f"Invalid new expression: {right.strip()}")
        type_name, array_size = expr.group(1), expr.group(3)

        if _looks_like_declaration(left):
            pointer_id = self._declare(left)[-1]
            pointer = self.manager.get_block(pointer_id)
            if pointer.pointer is None:
                raise ScriptError(f"Variable is not a pointer: {pointer.name}")
        else:
            pointer_id, _ = self._lookup_pointer(left)

        heap_id = self._allocate(
            f"{type_name}_heap", type_name, Discipline.RAW, self._array_count(array_size)
        )
        if not self.manager.assign_pointer(pointer_id, heap_id):
            raise ScriptError(f"Cannot assign new {type_name} to {left}")

    def _allocate(self, name: str, type_name: str, discipline: Discipline, count: int = 1) -> int:
        """Allocate a heap block for a class or basic type."""
        layout = self._classes.get(type_name)
        if layout is not None:
            if not layout.closed:
                raise ScriptError(f"Incomplete type: {type_name}")
            heap_id = self.manager.allocate_class_object_heap(name, layout, discipline)
            if count > 1:
                self.manager.get_block(heap_id).size = layout.total_size * count
            return heap_id
        if self.config.is_basic_type(type_name):
            return self.manager.allocate_heap(name, self.config.sizeof(type_name) * count, discipline)
        raise ScriptError(f"Unknown class: {type_name}")

    def _array_count(self, text: Optional[str], initializer: Optional[str] = None) -> int:
        if text is None:
            return 1
        if text == "" and initializer:
            # int a[] = {1, 2, 3}; / char s[] = "abc";
            if initializer.startswith("{") and initializer.endswith("}"):
                return max(1, len([item for item in initializer[1:-1].split(",") if item.strip()]))
            if len(initializer) >= 2 and initializer[0] == initializer[-1] == '"':
                return len(initializer) - 1
            return 1
        if not text.isdigit() or int(text) <= 0:
            raise ScriptError(f"Array size must be a positive constant: {text or '(empty)'}")
        return int(text)

    # ------------- Smart pointers ------------- #

    def _parse_smart_pointer(self, statement: str) -> None:
        decl = _SMART_DECL_RE.match(statement)
        if decl is not None:
            tag, type_name, name = decl.group(1), decl.group(2), decl.group(3)
            discipline = Discipline.UNIQUE if tag == "unique_ptr" else Discipline.SHARED
            if decl.group("ctor") is not None:
                self._construct_smart(name, discipline, type_name, decl.group("ctor").strip())
            else:
                self._declare_smart(name, discipline, type_name, (decl.group("init") or "").strip())
            return

        auto = _AUTO_RE.match(statement)
        if auto is not None:
            factory = _FACTORY_RE.match(auto.group(2))
            if factory is None:
                raise ScriptError(f"Cannot deduce smart pointer type: {statement}")
            discipline = Discipline.UNIQUE if factory.group(1) == "make_unique" else Discipline.SHARED
            self._declare_smart(auto.group(1), discipline, factory.group(2), auto.group(2))
            return

        assign = _ASSIGN_RE.match(statement)
        if assign is not None and _is_identifier(assign.group("left").strip()):
            name = assign.group("left").strip()
            factory = _FACTORY_RE.match(_strip_semicolon(assign.group("right")))
            if factory is not None:
                self._reset_smart(name, factory.group(2))
                return

        logger.debug("smart pointer statement not modeled: %s", statement)

    def _declare_smart(self, name: str, discipline: Discipline, type_name: str, init: str) -> None:
        """Declare a smart pointer, handling each initializer shape."""
        if init in ("", "nullptr", "NULL", "{}"):
            self._bind(name, self.manager.create_pointer(name, discipline, type_name))
            return

        factory = _FACTORY_RE.match(init)
        if factory is not None:
            if discipline is Discipline.UNIQUE and factory.group(1) == "make_shared":
                raise ScriptError(f"Cannot initialize unique_ptr from make_shared: {name}")
            pointer_id = self._bind(name, self.manager.create_pointer(name, discipline, type_name))
            heap_id = self._allocate(f"{name}_data", factory.group(2), discipline)
            self.manager.assign_pointer(pointer_id, heap_id, adopt=True)
            return

        move = _MOVE_RE.match(init)
        if move is not None:
            source_id, source = self._lookup_pointer(move.group(1))
            if source.pointer.discipline is not discipline:
                raise ScriptError(f"Cannot move {source.pointer.discipline.label} into {discipline.label}: {name}")
            if discipline is Discipline.UNIQUE:
                pointer_id = self._bind(name, self.manager.create_pointer(name, discipline, type_name))
                self.manager.move_unique(source_id, pointer_id)
            else:
                self._bind(name, self.manager.copy_shared(source_id, name))
                self.manager.assign_pointer(source_id, None)
            return

        if _is_identifier(init):
            source_id, source = self._lookup_pointer(init)
            if discipline is Discipline.UNIQUE:
                raise ScriptError(f"unique_ptr cannot be copied, use std::move: {name}")
            copy_id = self.manager.copy_shared(source_id, name)
            if copy_id is None:
                raise ScriptError(f"Cannot copy {source.pointer.discipline.label} into shared_ptr: {name}")
            self._bind(name, copy_id)
            return

        raise ScriptError(f"Unsupported smart pointer initializer: {init}")

    def _construct_smart(self, name: str, discipline: Discipline, type_name: str, ctor: str) -> None:
        """Handle ``unique_ptr<T> p(new T);``, ``shared_ptr<T> b(a);`` and ``(std::move(a))``."""
        if ctor in _NULL_LITERALS:
            ctor = ""
        expr = _NEW_EXPR_RE.match(ctor)
        if expr is None:
            self._declare_smart(name, discipline, type_name, ctor)
            return
        pointer_id = self._bind(name, self.manager.create_pointer(name, discipline, type_name))
        heap_id = self._allocate(f"{name}_data", expr.group(1), discipline, self._array_count(expr.group(3)))
        self.manager.assign_pointer(pointer_id, heap_id, adopt=True)

    def _reset_smart(self, name: str, type_name: str) -> None:
        """Handle ``p = make_unique<T>();`` on an existing smart pointer."""
        pointer_id, pointer = self._lookup_pointer(name)
        discipline = pointer.pointer.discipline
        if discipline is Discipline.RAW:
            raise ScriptError(f"Cannot assign a smart pointer factory to a raw pointer: {name}")
        if discipline is Discipline.UNIQUE and pointer.pointer.target is not None:
            self.manager.deallocate(pointer.pointer.target)
        heap_id = self._allocate(f"{name}_data", type_name, discipline)
        self.manager.assign_pointer(pointer_id, heap_id, adopt=True)

    # ------------- Assignment ------------- #

    def _parse_assignment(self, statement: str) -> None:
        match = _ASSIGN_RE.match(statement)
        left = strip_qualifiers(match.group("left").strip())
        right = _strip_semicolon(match.group("right"))

        if _looks_like_declaration(left):
            base = _DECL_HEAD_RE.match(left).group(1)
            if self.config.is_basic_type(base) or base in self._classes:
                for block_id in self._declare(left, right):
                    self._initialize(block_id, right)
                return
            if base not in self._variables:
                logger.debug("declaration of unsupported type not modeled: %s", left)
                return

        self._assign(left, right)

    def _initialize(self, block_id: int, value: str) -> None:
        """Apply an initializer; only pointer initializers have an effect."""
        block = self.manager.get_block(block_id)
        if block.pointer is None or value in _NULL_LITERALS:
            return
        if value.startswith("&") and _is_identifier(value[1:].strip()):
            target_id, _ = self._lookup(value[1:].strip())
            self.manager.assign_pointer(block_id, target_id)
        elif _is_identifier(value) and value in self._variables:
            _, source = self._lookup(value)
            if source.pointer is not None and source.pointer.target is not None:
                self.manager.assign_pointer(block_id, source.pointer.target)

    def _assign(self, left: str, right: str) -> None:
        """Plain assignment between already declared names."""
        base = re.match(r"^\*?\s*([A-Za-z_]\w*)", left)
        if base is None:
            logger.debug("assignment not modeled: %s = %s", left, right)
            return
        name = base.group(1)
        left_id, left_block = self._lookup(name)

        if left.startswith("*") or "->" in left:
            if left_block.pointer is None:
                raise ScriptError(f"Variable is not a pointer: {name}")
            if left_block.pointer.is_null:
                raise ScriptError(f"Null pointer dereference: {name}")
            return
        if left != name or left_block.pointer is None:
            # value or member write; values are not modeled
            return

        if right in _NULL_LITERALS:
            if left_block.pointer.discipline is Discipline.UNIQUE and left_block.pointer.target is not None:
                self.manager.deallocate(left_block.pointer.target)
            self.manager.assign_pointer(left_id, None)
            return

        if right.startswith("&") and _is_identifier(right[1:].strip()):
            target_id, _ = self._lookup(right[1:].strip())
            self.manager.assign_pointer(left_id, target_id)
            return

        move = _MOVE_RE.match(right)
        source_name = move.group(1) if move is not None else right
        if not _is_identifier(source_name) or source_name not in self._variables:
            logger.debug("assignment not modeled: %s = %s", left, right)
            return
        right_id, right_block = self._lookup(source_name)
        if right_block.pointer is None or right_id == left_id:
            return

        left_kind = left_block.pointer.discipline
        right_kind = right_block.pointer.discipline
        if left_kind is Discipline.SHARED and right_kind is Discipline.SHARED:
            self.manager.assign_pointer(left_id, None)
            copy_id = self.manager.copy_shared(right_id, name)
            self._bind(name, copy_id)
            if move is not None:
                self.manager.assign_pointer(right_id, None)
        elif left_kind is Discipline.UNIQUE and right_kind is Discipline.UNIQUE and move is not None:
            self.manager.move_unique(right_id, left_id)
        else:
            self.manager.assign_pointer(left_id, right_block.pointer.target)

    # ------------- Declarations ------------- #

    def _is_declaration(self, statement: str) -> bool:
        tokens = tokenize(strip_qualifiers(statement))
        if len(tokens) < 2 or tokens[1] in (";", "{", "}"):
            return False
        head = tokens[0]
        base = head.rstrip("*")
        pointer_shaped = head.endswith("*") or tokens[1].startswith("*")
        return (
            self.config.is_basic_type(base)
            or base in self._classes
            or (pointer_shaped and _is_identifier(base))
        )

    def _parse_declaration(self, statement: str) -> None:
        self._declare(statement)

    def _declare(self, text: str, initializer: Optional[str] = None) -> List[int]:
        """Declare every variable in ``T a, *b, c[4]`` and bind the names.

        ``initializer`` sizes an unsized array such as ``int a[] = {1, 2};``.

        Returns:
            The new block ids in declaration order
        """
        text = _strip_semicolon(strip_qualifiers(text))
        head = _DECL_HEAD_RE.match(text)
        if head is None:
            raise ScriptError(f"Invalid declaration: {text}")
        type_name, stars, rest = head.groups()
        # constructor arguments carry no modeled effect
        rest = re.sub(r"\([^()]*\)|\{[^{}]*\}", "", rest)

        ids: List[int] = []
        for index, declarator in enumerate(rest.split(",")):
            match = _DECLARATOR_RE.fullmatch(declarator.strip())
            if match is None:
                raise ScriptError(f"Invalid declaration: {text}")
            is_pointer = bool(match.group(1)) or (index == 0 and bool(stars))
            ids.append(self._declare_one(
                type_name, match.group(2), is_pointer,
                self._array_count(match.group(3), initializer),
            ))
        return ids

    def _declare_one(self, type_name: str, name: str, is_pointer: bool, count: int) -> int:
        if is_pointer:
            return self._bind(name, self.manager.create_pointer(name, Discipline.RAW, type_name))

        layout = self._classes.get(type_name)
        if layout is not None:
            if not layout.closed:
                raise ScriptError(f"Incomplete type: {type_name}")
            block_id = self.manager.create_class_object(name, layout)
            if count > 1:
                self.manager.get_block(block_id).size = layout.total_size * count
            return self._bind(name, block_id)

        if self.config.is_basic_type(type_name):
            size = self.config.sizeof(type_name) * count
            return self._bind(name, self.manager.create_stack_variable(name, size))

        raise ScriptError(f"Unknown type: {type_name}")
