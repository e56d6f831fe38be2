from wmmcheck.errors import SpecificationError, UnsupportedError
from wmmcheck.relations import Relation, closure, closure_paths, reason_key
from wmmcheck.tuples import Tuple

# violation() result for violations that have no positive reason
ALL = "all"

KINDS = ("empty", "irreflexive", "acyclic", "total")

class Axiom:
    """
    A consistency predicate over one relation.

    consistent() is a literal that is true iff the predicate holds,
    inconsistent() its negation; a negated axiom swaps the two.
    """

    def __init__(self, kind, rel, negate=False):
        if kind not in KINDS:
            raise UnsupportedError(f"unknown axiom kind '{kind}'")
        if not isinstance(rel, Relation):
            raise SpecificationError(f"axiom {kind} over {rel!r}, which is not a relation")
        self.kind = kind
        self.rel = rel
        self.negate = negate
        # acyclicity is irreflexivity of the transitive closure
        self.target = closure(rel) if kind == "acyclic" else rel

    def __repr__(self):
        return ("~" if self.negate else "") + f"{self.kind} {self.rel.name}"

    def encode_tuple_set(self, ctx):
        mx = self.target.max_tuple_set(ctx)
        if self.kind == "empty":
            return mx
        if self.kind == "total":
            return mx.filter(lambda t: t.first != t.second)
        return mx.filter(lambda t: t.first == t.second)

    def _field(self, ctx):
        return sorted(self.rel.max_tuple_set(ctx).field())

    def is_trivial(self, ctx):
        """
        True if the predicate holds in every execution without any clause.
        """
        if self.kind == "total":
            return len(self._field(ctx)) < 2
        return len(self.encode_tuple_set(ctx)) == 0

    def _consistent(self, ctx):
        if self.is_trivial(ctx):
            return ctx.TRUE
        ts = self.encode_tuple_set(ctx)
        self.target.add_encode_tuples(ctx, ts)
        self.target.encode(ctx)
        if self.kind == "total":
            field = self._field(ctx)
            return ctx.and_(
                    ctx.or_([-ctx.executes(a), -ctx.executes(b),
                        self.rel.edge(ctx, a, b), self.rel.edge(ctx, b, a)])
                    for i, a in enumerate(field) for b in field[i+1:])
        return ctx.and_(-self.target.edge_t(ctx, t) for t in ts)

    def consistent(self, ctx):
        lit = self._consistent(ctx)
        return -lit if self.negate else lit

    def inconsistent(self, ctx):
        return -self.consistent(ctx)

    def _violation(self, view):
        """
        Checks the unnegated predicate in a model. Returns None if it holds,
        else the smallest reason for the violation or ALL.
        """
        if self.kind == "total":
            edges = self.rel.evaluate(view)
            field = [e for e in self._field(view.ctx) if view.holds(view.ctx.executes(e))]
            for i, a in enumerate(field):
                for b in field[i+1:]:
                    if Tuple(a, b) not in edges and Tuple(b, a) not in edges:
                        return ALL
            return None
        edges = self.rel.evaluate(view)
        if self.kind == "acyclic":
            edges = closure_paths(edges)
        if self.kind != "empty":
            edges = {t: r for t, r in edges.items() if t.first == t.second}
        if not edges:
            return None
        return min(edges.values(), key=reason_key)

    def violation(self, view):
        v = self._violation(view)
        if self.negate:
            return ALL if v is None else None
        return v


def empty(rel, negate=False):
    return Axiom("empty", rel, negate)

def irreflexive(rel, negate=False):
    return Axiom("irreflexive", rel, negate)

def acyclic(rel, negate=False):
    return Axiom("acyclic", rel, negate)

def total(rel, negate=False):
    return Axiom("total", rel, negate)
