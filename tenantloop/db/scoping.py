"""
Tenant scoping for sandbox statements.

Every statement issued through the sandboxed lane is rewritten here before
it reaches the pool. The resolved tenant id is appended to the bound
arguments and referenced as a positional parameter, so scoping never
depends on connection state:

- SELECT / UPDATE / DELETE against one table get ``tenant_id = $n`` conjoined
  to their WHERE clause (the original predicate is parenthesised).
- INSERT ... VALUES gets the tenant column appended, or has every supplied
  tenant value checked against the resolved tenant.
- SET / ON CONFLICT DO UPDATE assignments to the tenant column must keep the
  resolved tenant.
- CREATE TABLE gets a tenant column with a cascading foreign key; a
  statement declaring that column itself is refused.

Anything whose rows cannot be bound to a single table (joins, subqueries,
set operations, CTEs, multiple statements, SELECT without FROM) is refused
with UnscopableStatement. Function calls are limited to ``ALLOWED_FUNCTIONS``
because functions such as ``query_to_xml`` run their own queries out of
reach of the rewrite. Comments are stripped before rewriting so they cannot
swallow the injected predicate.

Usage:
    scoped = scope_statement(
        "SELECT * FROM notes WHERE topic = $1", ("rent",),
        tenant_id="3f0c...", schema="sandbox",
    )
    # scoped.sql  == "SELECT * FROM sandbox.notes WHERE tenant_id = $2 AND ( topic = $1 )"
    # scoped.args == ("rent", "3f0c...")
"""

import re
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Set, Tuple

from ..constants import TENANT_COLUMN
from ..errors import CrossTenantViolation, UnscopableStatement

_TOKEN_RE = re.compile(
    r"""
      (?P<ws>\s+)
    | (?P<line_comment>--[^\n]*)
    | (?P<block_comment>/\*.*?\*/)
    | (?P<param>\$\d+)
    | (?P<dollar>\$(?P<tag>[A-Za-z_][A-Za-z_0-9]*|)\$.*?\$(?P=tag)\$)
    | (?P<string>[EeBbXxNn]?'(?:[^']|'')*')
    | (?P<name>
          (?:[A-Za-z_][A-Za-z_0-9$]*|"(?:[^"]|"")*")
          (?:\s*\.\s*(?:[A-Za-z_][A-Za-z_0-9$]*|"(?:[^"]|"")*"|\*))*
      )
    | (?P<number>\d+(?:\.\d*)?(?:[eE][+-]?\d+)?|\.\d+)
    | (?P<punct>[(),;\[\]])
    | (?P<op>::|<=|>=|<>|!=|\|\||->>|->|\#>>|\#>|@>|<@|[-+*/<>=~!@\#%^&|`?:.])
    """,
    re.VERBOSE | re.DOTALL,
)

_KINDS = ("ws", "line_comment", "block_comment", "param", "dollar", "string",
          "name", "number", "punct", "op")
_SKIPPED = frozenset({"ws", "line_comment", "block_comment"})

_NAME_PART_RE = re.compile(r'"(?:[^"]|"")*"|[^."\s]+')

_SELECT_TERMINATORS = frozenset(
    {"GROUP", "ORDER", "LIMIT", "OFFSET", "HAVING", "FOR", "WINDOW", "FETCH"}
)
_WRITE_TERMINATORS = frozenset({"RETURNING"})
_UNSUPPORTED_KEYWORDS = frozenset({"JOIN", "LATERAL", "UNION", "INTERSECT", "EXCEPT"})
_SUBQUERY_STARTERS = frozenset({"SELECT", "WITH", "VALUES", "TABLE"})
_NOT_AN_ALIAS = _SELECT_TERMINATORS | _WRITE_TERMINATORS | frozenset(
    {"WHERE", "SET", "USING", "ON", "VALUES", "DEFAULT", "SELECT", "AS",
     "TABLESAMPLE", "OVERRIDING", "INNER", "LEFT", "RIGHT", "FULL", "CROSS",
     "NATURAL"}
)

_TENANT_COLUMN_DDL = "{column} UUID NOT NULL REFERENCES public.tenants(id) ON DELETE CASCADE"

# Plain scalar, aggregate and window functions that cannot read other rows.
ALLOWED_FUNCTIONS = frozenset({
    # aggregates
    "count", "sum", "avg", "min", "max", "bool_and", "bool_or", "every",
    "string_agg", "array_agg", "json_agg", "jsonb_agg",
    "json_object_agg", "jsonb_object_agg",
    # conditionals
    "coalesce", "nullif", "greatest", "least", "cast",
    # text
    "lower", "upper", "initcap", "length", "char_length", "character_length",
    "trim", "btrim", "ltrim", "rtrim", "substring", "substr", "position",
    "strpos", "replace", "concat", "concat_ws", "left", "right", "lpad",
    "rpad", "repeat", "reverse", "split_part", "starts_with", "format",
    "regexp_replace", "regexp_match", "md5",
    # numbers
    "abs", "round", "ceil", "ceiling", "floor", "trunc", "mod", "power",
    "sqrt", "sign", "exp", "ln", "log", "random",
    # dates
    "now", "clock_timestamp", "date_trunc", "date_part", "extract", "age",
    "make_date", "make_time", "make_timestamp", "make_timestamptz",
    "make_interval", "to_char", "to_date", "to_timestamp", "to_number",
    "timezone",
    # json and arrays
    "to_json", "to_jsonb", "json_build_object", "jsonb_build_object",
    "json_build_array", "jsonb_build_array", "jsonb_set",
    "json_extract_path_text", "jsonb_extract_path_text", "json_typeof",
    "jsonb_typeof", "json_array_length", "jsonb_array_length",
    "array_length", "cardinality", "array_to_string", "array_position",
    "array_append", "array_remove", "unnest",
    # window
    "row_number", "rank", "dense_rank", "lag", "lead", "first_value",
    "last_value", "ntile",
    # ids
    "gen_random_uuid",
})

# Words that may precede "(" without calling a function.
_PAREN_KEYWORDS = frozenset({
    "AND", "OR", "NOT", "IN", "ANY", "ALL", "SOME", "VALUES", "CONFLICT",
    "KEY", "UNIQUE", "CHECK", "WHERE", "SET", "ON", "DEFAULT", "THEN", "ELSE",
    "WHEN", "SELECT", "BY", "IS", "RETURNING", "FILTER", "OVER", "ROW",
    "LIKE", "ILIKE", "BETWEEN", "DISTINCT", "USING", "INCLUDE", "EXISTS",
})

# Type names taking a modifier, e.g. VARCHAR(20) or NUMERIC(12, 2).
_TYPE_MODIFIER_NAMES = frozenset({
    "VARCHAR", "CHAR", "CHARACTER", "VARYING", "NUMERIC", "DECIMAL",
    "TIMESTAMP", "TIMESTAMPTZ", "TIME", "TIMETZ", "BIT", "VARBIT", "FLOAT",
    "INTERVAL",
})

# A name after one of these is a relation or alias, not a function.
_RELATION_PREFIXES = frozenset({"INTO", "TABLE", "EXISTS", "REFERENCES", "AS"})


@dataclass(frozen=True)
class Token:
    kind: str
    text: str

    @property
    def keyword(self) -> Optional[str]:
        """Upper-cased text for bare words, None for anything quoted or dotted."""
        if self.kind == "name" and '"' not in self.text and "." not in self.text:
            return self.text.upper()
        return None


@dataclass(frozen=True)
class ScopedStatement:
    """A statement rewritten to touch only one tenant's rows."""
    sql: str
    args: Tuple[Any, ...]
    kind: str
    table: Optional[str] = None


def tokenize(sql: str) -> List[Token]:
    """Split SQL into tokens, dropping whitespace and comments."""
    tokens: List[Token] = []
    pos = 0
    while pos < len(sql):
        match = _TOKEN_RE.match(sql, pos)
        if match is None:
            raise UnscopableStatement(f"Unexpected character at offset {pos}")
        kind = next(k for k in _KINDS if match.group(k) is not None)
        pos = match.end()
        if kind not in _SKIPPED:
            tokens.append(Token(kind, match.group(kind)))
    return tokens


def render(tokens: Sequence[Token]) -> str:
    return " ".join(t.text for t in tokens)


def scope_statement(
    sql: str,
    args: Sequence[Any],
    tenant_id: str,
    schema: str,
    tenant_column: str = TENANT_COLUMN,
) -> ScopedStatement:
    """Rewrite one statement so it reads and writes only ``tenant_id``'s rows.

    Args:
        sql: A single SQL statement using ``$n`` positional parameters.
        args: Values bound to those parameters.
        tenant_id: Resolved tenant; appended to the returned args when used.
        schema: Schema unqualified table names resolve to. Qualified names in
            any other schema are refused.
        tenant_column: Column holding the owning tenant.

    Raises:
        UnscopableStatement: The statement cannot be bound to one tenant.
        CrossTenantViolation: The statement writes another tenant's id.
    """
    tokens = tokenize(sql)
    while tokens and tokens[-1].text == ";":
        tokens.pop()
    if not tokens:
        raise UnscopableStatement("Empty statement")
    if any(t.text == ";" for t in tokens):
        raise UnscopableStatement("Only one statement may be executed at a time")

    for tok in tokens:
        if tok.kind == "param" and not 1 <= int(tok.text[1:]) <= len(args):
            raise UnscopableStatement(f"Parameter {tok.text} has no bound value")

    return _Scoper(tokens, list(args), tenant_id, schema, tenant_column).scope()


# ---------------------------------------------------------------------------
# Token helpers
# ---------------------------------------------------------------------------

def _find(
    tokens: Sequence[Token],
    targets: Set[str],
    start: int = 0,
    stop: Optional[int] = None,
) -> Optional[int]:
    """Index of the first token at paren depth 0 whose keyword or text is in targets."""
    depth = 0
    stop = len(tokens) if stop is None else stop
    for i in range(start, stop):
        tok = tokens[i]
        if depth == 0 and (tok.keyword in targets or tok.text in targets):
            return i
        if tok.text in ("(", "["):
            depth += 1
        elif tok.text in (")", "]"):
            depth -= 1
    return None


def _matching(tokens: Sequence[Token], open_index: int) -> int:
    """Index of the bracket closing the one at ``open_index``."""
    depth = 0
    for i in range(open_index, len(tokens)):
        if tokens[i].text in ("(", "["):
            depth += 1
        elif tokens[i].text in (")", "]"):
            depth -= 1
            if depth == 0:
                return i
    raise UnscopableStatement("Unbalanced parentheses")


def _split(tokens: Sequence[Token], start: int, stop: int) -> List[Tuple[int, int]]:
    """(start, end) ranges of the comma-separated items in tokens[start:stop]."""
    items = []
    item_start = start
    while True:
        comma = _find(tokens, {","}, item_start, stop)
        if comma is None:
            if item_start < stop:
                items.append((item_start, stop))
            return items
        items.append((item_start, comma))
        item_start = comma + 1


def _unquote(part: str) -> str:
    if part.startswith('"'):
        return part[1:-1].replace('""', '"')
    return part.lower()


def _string_value(literal: str) -> str:
    return literal[literal.index("'") + 1:-1].replace("''", "'")


class _Scoper:
    """Single-use rewriter holding the mutable token list for one statement."""

    def __init__(
        self,
        tokens: List[Token],
        args: List[Any],
        tenant_id: str,
        schema: str,
        tenant_column: str,
    ):
        self.tokens = tokens
        self.args = args
        self.tenant_id = tenant_id.lower()
        self.schema = schema
        self.column = tenant_column
        self._tenant_param: Optional[str] = None

    @property
    def tenant_param(self) -> str:
        # Bound on first use; statements with no table keep their args untouched.
        if self._tenant_param is None:
            self.args.append(self.tenant_id)
            self._tenant_param = f"${len(self.args)}"
        return self._tenant_param

    def scope(self) -> ScopedStatement:
        for i, tok in enumerate(self.tokens):
            if tok.keyword in _UNSUPPORTED_KEYWORDS:
                raise UnscopableStatement(
                    f"{tok.keyword} is not supported in sandbox statements"
                )
            if (
                tok.text == "("
                and i + 1 < len(self.tokens)
                and self.tokens[i + 1].keyword in _SUBQUERY_STARTERS
            ):
                raise UnscopableStatement("Subqueries are not supported in sandbox statements")
        self._check_function_calls()

        verb = self.tokens[0].keyword
        handlers = {
            "SELECT": self._scope_select,
            "INSERT": self._scope_insert,
            "UPDATE": self._scope_update,
            "DELETE": self._scope_delete,
            "CREATE": self._scope_create,
            "ALTER": self._scope_alter,
        }
        handler = handlers.get(verb or "")
        if handler is None:
            raise UnscopableStatement(
                f"{verb or self.tokens[0].text} statements are not allowed in the sandbox"
            )
        kind, table = handler()
        return ScopedStatement(
            sql=render(self.tokens),
            args=tuple(self.args),
            kind=kind,
            table=table,
        )

    # -- Shared pieces ------------------------------------------------------

    def _check_function_calls(self) -> None:
        """Refuse any call of a function outside ``ALLOWED_FUNCTIONS``."""
        for i in range(len(self.tokens) - 1):
            tok = self.tokens[i]
            if tok.kind != "name" or self.tokens[i + 1].text != "(":
                continue
            if tok.keyword in _PAREN_KEYWORDS or tok.keyword in _TYPE_MODIFIER_NAMES:
                continue
            if i > 0 and self.tokens[i - 1].keyword in _RELATION_PREFIXES:
                continue
            parts = _NAME_PART_RE.findall(tok.text)
            if len(parts) > 1:
                raise UnscopableStatement(
                    f"Schema-qualified function {tok.text} is not allowed in the sandbox"
                )
            if _unquote(parts[0]) not in ALLOWED_FUNCTIONS:
                raise UnscopableStatement(
                    f"Function {tok.text} is not allowed in the sandbox"
                )

    def _expect(self, index: int, keyword: str, message: str) -> None:
        if index >= len(self.tokens) or self.tokens[index].keyword != keyword:
            raise UnscopableStatement(message)

    def _qualify(self, index: int) -> str:
        """Resolve the table name at ``index`` into the lane schema, in place."""
        if index >= len(self.tokens) or self.tokens[index].kind != "name":
            raise UnscopableStatement("Expected a table name")
        text = self.tokens[index].text
        parts = _NAME_PART_RE.findall(text)
        if "*" in parts:
            raise UnscopableStatement("Expected a table name")
        if len(parts) == 1:
            qualified = f"{self.schema}.{parts[0]}"
        elif len(parts) == 2 and _unquote(parts[0]) == self.schema:
            qualified = f"{self.schema}.{parts[1]}"
        else:
            raise UnscopableStatement(f"Table {text} is outside the {self.schema} schema")
        self.tokens[index] = Token("name", qualified)
        return qualified

    def _skip_only(self, index: int) -> int:
        if index < len(self.tokens) and self.tokens[index].keyword == "ONLY":
            return index + 1
        return index

    def _skip_alias(self, index: int) -> Tuple[int, Optional[str]]:
        """Step over ``[AS] alias`` following a table name."""
        if index < len(self.tokens) and self.tokens[index].keyword == "AS":
            if index + 1 >= len(self.tokens) or self.tokens[index + 1].kind != "name":
                raise UnscopableStatement("Expected an alias after AS")
            return index + 2, self.tokens[index + 1].text
        if index < len(self.tokens):
            tok = self.tokens[index]
            if tok.kind == "name" and "." not in tok.text and tok.keyword not in _NOT_AN_ALIAS:
                return index + 1, tok.text
        return index, None

    def _column_name(self, tok: Token) -> str:
        return _unquote(_NAME_PART_RE.findall(tok.text)[-1])

    def _predicate(self, qualifier: Optional[str]) -> List[Token]:
        column = f"{qualifier}.{self.column}" if qualifier else self.column
        return [Token("name", column), Token("op", "="), Token("param", self.tenant_param)]

    def _scope_where(
        self,
        start: int,
        terminators: Set[str],
        qualifier: Optional[str] = None,
    ) -> None:
        """Conjoin the tenant predicate to the WHERE clause found after ``start``."""
        where = _find(self.tokens, {"WHERE"}, start)
        if where is not None:
            end = _find(self.tokens, terminators, where + 1)
            end = len(self.tokens) if end is None else end
            if end == where + 1:
                raise UnscopableStatement("Empty WHERE clause")
            original = self.tokens[where + 1:end]
            self.tokens[where + 1:end] = (
                self._predicate(qualifier)
                + [Token("name", "AND"), Token("punct", "(")]
                + original
                + [Token("punct", ")")]
            )
            return
        at = _find(self.tokens, terminators, start)
        at = len(self.tokens) if at is None else at
        self.tokens[at:at] = [Token("name", "WHERE")] + self._predicate(qualifier)

    def _is_tenant_value(self, value: Sequence[Token], allow_excluded: bool) -> bool:
        """True if ``value`` is a literal, parameter or EXCLUDED ref equal to the tenant."""
        if not value:
            return False
        head, rest = value[0], value[1:]
        if rest and not (len(rest) == 2 and rest[0].text == "::" and rest[1].kind == "name"):
            return False
        if head.kind == "param":
            bound = self.args[int(head.text[1:]) - 1]
            return str(bound).lower() == self.tenant_id
        if head.kind == "string":
            return _string_value(head.text).lower() == self.tenant_id
        if allow_excluded and head.kind == "name":
            return head.text.lower().replace(" ", "") == f"excluded.{self.column}"
        return False

    def _check_assignments(self, start: int, stop: int, allow_excluded: bool) -> None:
        """Refuse SET items that would write a different tenant id."""
        for item_start, item_end in _split(self.tokens, start, stop):
            target = self.tokens[item_start]
            if target.text == "(":
                close = _matching(self.tokens, item_start)
                names = [
                    self._column_name(t)
                    for t in self.tokens[item_start + 1:close]
                    if t.kind == "name"
                ]
                if self.column in names:
                    raise UnscopableStatement(
                        f"Multi-column assignment to {self.column} is not supported"
                    )
                continue
            if target.kind != "name" or self._column_name(target) != self.column:
                continue
            value = self.tokens[item_start + 2:item_end]
            if not self._is_tenant_value(value, allow_excluded):
                raise CrossTenantViolation(
                    f"Statement would assign {self.column} to another tenant"
                )

    # -- Statement kinds ----------------------------------------------------

    def _scope_select(self) -> Tuple[str, Optional[str]]:
        if _find(self.tokens, {"INTO"}, 1) is not None:
            raise UnscopableStatement("SELECT INTO is not allowed in the sandbox")
        frm = _find(self.tokens, {"FROM"}, 1)
        if frm is None:
            raise UnscopableStatement("SELECT must read from one of your tables")
        index = self._skip_only(frm + 1)
        table = self._qualify(index)
        after, _ = self._skip_alias(index + 1)
        if after < len(self.tokens) and self.tokens[after].keyword not in (
            _SELECT_TERMINATORS | {"WHERE"}
        ):
            raise UnscopableStatement("Only single-table SELECT statements are supported")
        self._scope_where(after, _SELECT_TERMINATORS)
        return "select", table

    def _scope_update(self) -> Tuple[str, Optional[str]]:
        index = self._skip_only(1)
        table = self._qualify(index)
        after, _ = self._skip_alias(index + 1)
        self._expect(after, "SET", "Malformed UPDATE statement")
        end_set = _find(self.tokens, {"FROM", "WHERE", "RETURNING"}, after + 1)
        if end_set is not None and self.tokens[end_set].keyword == "FROM":
            raise UnscopableStatement("UPDATE ... FROM is not supported")
        self._check_assignments(
            after + 1,
            len(self.tokens) if end_set is None else end_set,
            allow_excluded=False,
        )
        self._scope_where(after + 1, _WRITE_TERMINATORS)
        return "update", table

    def _scope_delete(self) -> Tuple[str, Optional[str]]:
        self._expect(1, "FROM", "Malformed DELETE statement")
        index = self._skip_only(2)
        table = self._qualify(index)
        after, _ = self._skip_alias(index + 1)
        if after < len(self.tokens) and self.tokens[after].keyword not in ("WHERE", "RETURNING"):
            raise UnscopableStatement("Only single-table DELETE statements are supported")
        self._scope_where(after, _WRITE_TERMINATORS)
        return "delete", table

    def _scope_insert(self) -> Tuple[str, Optional[str]]:
        self._expect(1, "INTO", "Malformed INSERT statement")
        table = self._qualify(2)
        index = 3
        alias = None
        if index < len(self.tokens) and self.tokens[index].keyword == "AS":
            alias = self.tokens[index + 1].text if index + 1 < len(self.tokens) else None
            index += 2
        if index >= len(self.tokens) or self.tokens[index].text != "(":
            raise UnscopableStatement("INSERT statements must list their columns")
        columns_close = _matching(self.tokens, index)
        columns = [
            self._column_name(self.tokens[s])
            for s, _ in _split(self.tokens, index + 1, columns_close)
        ]
        self._expect(columns_close + 1, "VALUES", "Only INSERT ... VALUES is supported")

        rows: List[Tuple[int, int]] = []
        i = columns_close + 2
        while True:
            if i >= len(self.tokens) or self.tokens[i].text != "(":
                raise UnscopableStatement("Malformed VALUES list")
            close = _matching(self.tokens, i)
            rows.append((i, close))
            i = close + 1
            if i < len(self.tokens) and self.tokens[i].text == ",":
                i += 1
                continue
            break
        tail = i

        if self.column in columns:
            position = columns.index(self.column)
            for start, close in rows:
                items = _split(self.tokens, start + 1, close)
                if len(items) != len(columns):
                    raise UnscopableStatement("VALUES row does not match the column list")
                s, e = items[position]
                if not self._is_tenant_value(self.tokens[s:e], allow_excluded=False):
                    raise CrossTenantViolation(
                        f"INSERT into {table} supplies another tenant's {self.column}"
                    )
        else:
            param = self.tenant_param
            # Rows first, from the back, so earlier indices stay valid.
            for _, close in reversed(rows):
                self.tokens[close:close] = [Token("punct", ","), Token("param", param)]
            self.tokens[columns_close:columns_close] = [
                Token("punct", ","), Token("name", self.column),
            ]
            tail += 2 * len(rows) + 2

        if tail < len(self.tokens):
            keyword = self.tokens[tail].keyword
            if keyword == "ON":
                self._scope_conflict(tail, alias or _NAME_PART_RE.findall(table)[-1])
            elif keyword != "RETURNING":
                raise UnscopableStatement("Malformed INSERT statement")
        return "insert", table

    def _scope_conflict(self, start: int, qualifier: str) -> None:
        do = _find(self.tokens, {"DO"}, start)
        if do is None or do + 1 >= len(self.tokens):
            raise UnscopableStatement("Malformed ON CONFLICT clause")
        action = self.tokens[do + 1].keyword
        if action == "NOTHING":
            return
        if action != "UPDATE":
            raise UnscopableStatement("Malformed ON CONFLICT clause")
        self._expect(do + 2, "SET", "Malformed ON CONFLICT clause")
        stop = _find(self.tokens, {"WHERE", "RETURNING"}, do + 3)
        self._check_assignments(
            do + 3,
            len(self.tokens) if stop is None else stop,
            allow_excluded=True,
        )
        # The conflicting row may belong to anyone; only update it if it is ours.
        self._scope_where(do + 3, _WRITE_TERMINATORS, qualifier=qualifier)

    def _scope_create(self) -> Tuple[str, Optional[str]]:
        self._expect(1, "TABLE", "Only CREATE TABLE is allowed in the sandbox")
        index = 2
        if [t.keyword for t in self.tokens[2:5]] == ["IF", "NOT", "EXISTS"]:
            index = 5
        table = self._qualify(index)
        open_ = index + 1
        if open_ >= len(self.tokens) or self.tokens[open_].text != "(":
            raise UnscopableStatement("CREATE TABLE must define its columns")
        close = _matching(self.tokens, open_)
        if close != len(self.tokens) - 1:
            raise UnscopableStatement("CREATE TABLE options are not supported in the sandbox")

        items = _split(self.tokens, open_ + 1, close)
        names = [self._column_name(self.tokens[s]) for s, _ in items]
        if self.column in names:
            raise UnscopableStatement(f"{self.column} is managed automatically")
        ddl = tokenize(_TENANT_COLUMN_DDL.format(column=self.column))
        if items:
            ddl.append(Token("punct", ","))
        self.tokens[open_ + 1:open_ + 1] = ddl
        return "create_table", table

    def _scope_alter(self) -> Tuple[str, Optional[str]]:
        self._expect(1, "TABLE", "Only ALTER TABLE ... ADD COLUMN is allowed in the sandbox")
        index = 2
        if [t.keyword for t in self.tokens[2:4]] == ["IF", "EXISTS"]:
            index = 4
        table = self._qualify(index)
        self._expect(index + 1, "ADD", "Only ALTER TABLE ... ADD COLUMN is allowed in the sandbox")
        if _find(self.tokens, {","}, index + 2) is not None:
            raise UnscopableStatement("Add one column per ALTER TABLE statement")
        column_at = index + 2
        for keyword in ("COLUMN", "IF", "NOT", "EXISTS"):
            if column_at < len(self.tokens) and self.tokens[column_at].keyword == keyword:
                column_at += 1
        if column_at >= len(self.tokens):
            raise UnscopableStatement("Malformed ALTER TABLE statement")
        if self._column_name(self.tokens[column_at]) == self.column:
            raise UnscopableStatement(f"{self.column} is managed automatically")
        return "alter_table", table
