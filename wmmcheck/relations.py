from collections import deque
from itertools import count

from wmmcheck import coherence
from wmmcheck.equivalence import ExecutionEquivalence
from wmmcheck.errors import InvariantViolation, SpecificationError, UnsupportedError
from wmmcheck.program import event_filter
from wmmcheck.tuples import Tuple, TupleSet

# relations fixed by the program structure; an edge holds iff both ends execute
STATIC = ("po", "int", "ext", "id", "loc", "set")
# relations with one free variable per candidate tuple
DYNAMIC = ("rf", "co")
COMBINATORS = ("union", "inter", "inverse", "seq", "closure", "cartesian")
KINDS = STATIC + DYNAMIC + COMBINATORS

# closure of these is the relation itself
TRANSITIVE = ("po", "int", "id", "loc", "set", "co")

# numbers callable filters, whose __name__ need not be unique
_filter_ids = count(1)

def reason_key(reason):
    return (len(reason), sorted(reason))

class Relation:
    """
    A relation over the events of a program.

    The kind tag selects the behaviour of every operation. Two tuple sets
    are kept per relation: max_tuple_set, every edge the relation can hold
    in any execution (computed once per program), and encode_tuple_set,
    the tuples some axiom or parent relation asked to be defined (always a
    subset of max_tuple_set).
    """

    def __init__(self, kind, operands=(), name=None, filters=None):
        if kind not in KINDS:
            raise UnsupportedError(f"unknown relation kind '{kind}'")
        operands = list(operands)
        for op in operands:
            if not isinstance(op, Relation):
                raise SpecificationError(f"operand {op!r} of {kind} is not a relation")
        arity = {"union": None, "inter": None, "inverse": 1, "seq": 2, "closure": 1}
        if kind in arity:
            if arity[kind] is None and len(operands) < 2:
                raise SpecificationError(f"{kind} needs at least two operands")
            if arity[kind] is not None and len(operands) != arity[kind]:
                raise SpecificationError(f"{kind} needs exactly {arity[kind]} operand(s)")
        elif operands:
            raise SpecificationError(f"{kind} takes no operands")
        if kind == "set" and (filters is None or len(filters) != 1):
            raise SpecificationError("set needs one event filter")
        if kind == "cartesian" and (filters is None or len(filters) != 2):
            raise SpecificationError("cartesian needs two event filters")

        self.kind = kind
        self.operands = operands
        self.filter_names = [f if isinstance(f, str)
                else f"{getattr(f, '__name__', 'filter')}#{next(_filter_ids)}"
                for f in (filters or [])]
        self.filters = [event_filter(f) for f in (filters or [])]
        self._name = name

        self._program = None
        self._max = None
        self._ctx = None
        self._encode = None
        self._encoded = None
        self._levels = None
        self._level_done = None
        self._full = False

    @property
    def name(self):
        return self._name if self._name is not None else self.term

    @name.setter
    def name(self, name):
        self._name = name

    @property
    def term(self):
        """
        The relation spelled out over the current names of its operands.
        """
        ops = [op.name for op in self.operands]
        if self.kind == "union":
            return "(" + " | ".join(ops) + ")"
        if self.kind == "inter":
            return "(" + " & ".join(ops) + ")"
        if self.kind == "inverse":
            return f"{ops[0]}^-1"
        if self.kind == "seq":
            return f"({ops[0]} ; {ops[1]})"
        if self.kind == "closure":
            return f"{ops[0]}^+"
        if self.kind == "set":
            return f"[{self.filter_names[0]}]"
        if self.kind == "cartesian":
            return f"({self.filter_names[0]} * {self.filter_names[1]})"
        return self.kind

    def __repr__(self):
        return self.name if self.name == self.term else f"{self.name} := {self.term}"

    def same_structure(self, other):
        """
        True if both relations denote the same term, so that sharing edge
        variables under one name is harmless.
        """
        if self is other:
            return True
        return (self.kind == other.kind
                and self.filter_names == other.filter_names
                and len(self.operands) == len(other.operands)
                and all(a.same_structure(b) for a, b in zip(self.operands, other.operands)))

    def _reset(self, ctx):
        if self._program is not ctx.program:
            self._program = ctx.program
            self._max = None
            self._ctx = None
        if self._ctx is not ctx:
            self._ctx = ctx
            self._encode = TupleSet()
            self._encoded = TupleSet()
            self._levels = None
            self._level_done = None
            self._full = False

    ############### TUPLE SETS ###############

    def max_tuple_set(self, ctx):
        self._reset(ctx)
        if self._max is None:
            self._max = self._compute_max(ctx)
        return self._max

    def _compute_max(self, ctx):
        P = ctx.program
        events = P.events
        kind = self.kind
        if kind == "po":
            return TupleSet.of_pairs((a, b) for thread in P.threads
                    for a in thread for b in thread if a.index < b.index)
        if kind == "int":
            return TupleSet.of_pairs((a, b) for a in events for b in events
                    if a.thread == b.thread and (a.thread >= 0 or a == b))
        if kind == "ext":
            return TupleSet.of_pairs((a, b) for a in events for b in events
                    if a != b and (a.thread != b.thread or a.thread < 0))
        if kind == "id":
            return TupleSet.of_pairs((e, e) for e in events)
        if kind == "set":
            return TupleSet.of_pairs((e, e) for e in events if self.filters[0](e))
        if kind == "loc":
            return TupleSet.of_pairs((a, b) for c in ctx.locations.classes for a in c for b in c)
        if kind == "rf":
            return TupleSet.of_pairs((w, r) for c in ctx.locations.classes
                    for w in c if w.is_write() for r in c if r.is_read())
        if kind == "co":
            return coherence.max_tuple_set(self, ctx)
        if kind == "cartesian":
            f1, f2 = self.filters
            return TupleSet.of_pairs((a, b) for a in events if f1(a) for b in events if f2(b))

        maxes = [op.max_tuple_set(ctx) for op in self.operands]
        if kind == "union":
            result = TupleSet()
            for m in maxes:
                result.update(m)
            return result
        if kind == "inter":
            result = maxes[0]
            for m in maxes[1:]:
                result = result.intersection(m)
            return result
        if kind == "inverse":
            return maxes[0].inverse()
        if kind == "seq":
            return maxes[0].compose(maxes[1])
        if kind == "closure":
            if self.operands[0].kind in TRANSITIVE:
                return TupleSet(maxes[0])
            result = TupleSet(maxes[0])
            while result.update(result.compose(maxes[0])):
                pass
            return result
        raise UnsupportedError(f"no tuple set for relation kind '{kind}'")

    def encode_tuple_set(self, ctx):
        self._reset(ctx)
        return self._encode

    def add_encode_tuples(self, ctx, tuples):
        """
        Asks for the given tuples to be defined and passes on what the
        operands need for them. Tuples outside max_tuple_set are dropped.
        """
        mx = self.max_tuple_set(ctx)
        if self.kind in STATIC:
            return
        new = TupleSet(t for t in tuples if t in mx and t not in self._encode)
        if len(new) == 0:
            return
        self._encode.update(new)

        kind = self.kind
        if kind in ("union", "inter"):
            for op in self.operands:
                op.add_encode_tuples(ctx, new)
        elif kind == "inverse":
            self.operands[0].add_encode_tuples(ctx, new.inverse())
        elif kind == "seq":
            r, s = self.operands
            rmax, smax = r.max_tuple_set(ctx), s.max_tuple_set(ctx)
            left, right = TupleSet(), TupleSet()
            for t in new:
                for b in rmax.witnesses(smax, t.first, t.second):
                    left.add(Tuple(t.first, b))
                    right.add(Tuple(b, t.second))
            r.add_encode_tuples(ctx, left)
            s.add_encode_tuples(ctx, right)
        elif kind == "closure":
            op = self.operands[0]
            if op.kind in TRANSITIVE:
                op.add_encode_tuples(ctx, new)
                return
            levels = self._closure_levels(ctx)
            need = new
            for k in range(len(levels) - 1, -1, -1):
                levels[k].update(need)
                if k == 0:
                    break
                below = TupleSet(need)
                for t in need:
                    for b in mx.witnesses(mx, t.first, t.second):
                        below.add(Tuple(t.first, b))
                        below.add(Tuple(b, t.second))
                need = below
            op.add_encode_tuples(ctx, need)

    def _closure_levels(self, ctx):
        """
        Level k holds the paths of length at most 2^k; level 0 is the
        operand itself and the last level is this relation.
        """
        if self._levels is None:
            n = len(self.max_tuple_set(ctx).field())
            depth = max(n - 1, 0).bit_length()
            self._levels = [TupleSet() for k in range(depth + 1)]
        return self._levels

    ############### LITERALS ###############

    def edge(self, ctx, a, b):
        return self.edge_t(ctx, Tuple(a, b))

    def edge_t(self, ctx, t):
        if t not in self.max_tuple_set(ctx):
            return ctx.FALSE
        kind = self.kind
        if kind in ("id", "set"):
            return ctx.executes(t.first)
        if kind in STATIC:
            return ctx.and_([ctx.executes(t.first), ctx.executes(t.second)])
        if kind in DYNAMIC or kind == "cartesian":
            return ctx.edge_var(self.name, t)
        if kind == "closure" and self.operands[0].kind in TRANSITIVE:
            return self.operands[0].edge_t(ctx, t)
        if t not in self._encode:
            raise InvariantViolation(f"edge {t} of {self.name} used but never requested")
        return ctx.edge_var(self.name, t)

    def _level(self, ctx, k, t):
        mx = self.max_tuple_set(ctx)
        if t not in mx:
            return ctx.FALSE
        if k == 0:
            return self.operands[0].edge_t(ctx, t)
        if k == len(self._levels) - 1:
            return ctx.edge_var(self.name, t)
        return ctx.var(f"{self.name}@{k}[{t.first.eid},{t.second.eid}]")

    ############### ENCODING ###############

    def encode(self, ctx):
        """
        Adds the clauses defining every requested tuple that has not been
        encoded in ctx yet.
        """
        self.max_tuple_set(ctx)
        for op in self.operands:
            op.encode(ctx)
        kind = self.kind
        if kind in STATIC:
            return
        if kind in DYNAMIC or kind == "cartesian":
            if not self._full:
                self._full = True
                self._encode.update(self._max)
                self._encoded.update(self._max)
                if kind == "rf":
                    self._encode_rf(ctx)
                elif kind == "co":
                    coherence.encode(self, ctx)
                else:
                    self._encode_cartesian(ctx)
            return

        todo = [t for t in self._encode if t not in self._encoded]
        if not todo:
            return
        ops = self.operands
        if kind == "union":
            for t in todo:
                ctx.define(ctx.edge_var(self.name, t), ctx.or_(op.edge_t(ctx, t) for op in ops))
        elif kind == "inter":
            for t in todo:
                ctx.define(ctx.edge_var(self.name, t), ctx.and_(op.edge_t(ctx, t) for op in ops))
        elif kind == "inverse":
            for t in todo:
                ctx.define(ctx.edge_var(self.name, t), ops[0].edge_t(ctx, t.inverse()))
        elif kind == "seq":
            r, s = ops
            rmax, smax = r.max_tuple_set(ctx), s.max_tuple_set(ctx)
            for t in todo:
                a, c = t.first, t.second
                ctx.define(ctx.edge_var(self.name, t), ctx.or_(
                    ctx.and_([r.edge(ctx, a, b), s.edge(ctx, b, c)])
                    for b in rmax.witnesses(smax, a, c)))
        elif kind == "closure":
            if ops[0].kind not in TRANSITIVE:
                self._encode_closure(ctx)
        self._encoded.update(todo)

    def _encode_closure(self, ctx):
        mx = self._max
        levels = self._levels
        if len(levels) == 1:
            for t in levels[0]:
                if t not in self._encoded:
                    ctx.define(ctx.edge_var(self.name, t), self.operands[0].edge_t(ctx, t))
            return
        if self._level_done is None:
            self._level_done = [TupleSet() for k in levels]
        done = self._level_done
        for k in range(1, len(levels)):
            for t in levels[k]:
                if t in done[k]:
                    continue
                a, c = t.first, t.second
                paths = [self._level(ctx, k-1, t)] + [
                        ctx.and_([self._level(ctx, k-1, Tuple(a, b)), self._level(ctx, k-1, Tuple(b, c))])
                        for b in mx.witnesses(mx, a, c)]
                ctx.define(self._level(ctx, k, t), ctx.or_(paths))
                done[k].add(t)

    def _encode_rf(self, ctx):
        for t in self._max:
            w, r = t.first, t.second
            lit = ctx.edge_var(self.name, t)
            ctx.extend([[-lit, ctx.executes(w)], [-lit, ctx.executes(r)], [-lit, ctx.value(r, w.value)]])
        for r in ctx.program.reads():
            lits = [ctx.edge_var(self.name, Tuple(w, r)) for w in sorted(self._max.predecessors(r))]
            # an executing read reads from exactly one write
            ctx.add([-ctx.executes(r)] + lits)
            ctx.at_most_one(lits)

    def _encode_cartesian(self, ctx):
        f1, f2 = self.filters
        for a in ctx.program.events:
            for b in ctx.program.events:
                lit = ctx.var(f"{self.name}[{a.eid},{b.eid}]")
                ctx.add([lit] if f1(a) and f2(b) else [-lit])

    ############### MODEL EVALUATION ###############

    def evaluate(self, view):
        """
        The edges of this relation in a model, each mapped to a reason: a
        set of literals true in the model that forces the edge.
        """
        key = id(self)
        if key not in view.cache:
            view.cache[key] = self._evaluate(view)
        return view.cache[key]

    def _evaluate(self, view):
        ctx = view.ctx
        mx = self.max_tuple_set(ctx)
        kind = self.kind
        result = {}
        if kind in STATIC:
            for t in mx:
                if view.holds(ctx.executes(t.first)) and view.holds(ctx.executes(t.second)):
                    result[t] = frozenset(view.classes.reason([t.first, t.second]))
            return result
        if kind == "cartesian":
            return {t: frozenset() for t in mx}
        if kind in DYNAMIC:
            for t in mx:
                lit = ctx.edge_var(self.name, t)
                if lit in view.model:
                    result[t] = frozenset([lit])
            return result

        evals = [op.evaluate(view) for op in self.operands]
        if kind == "union":
            for ev in evals:
                for t in sorted(ev):
                    if t not in result:
                        result[t] = ev[t]
        elif kind == "inter":
            for t in sorted(evals[0]):
                if all(t in ev for ev in evals[1:]):
                    result[t] = frozenset().union(*(ev[t] for ev in evals))
        elif kind == "inverse":
            for t, reason in evals[0].items():
                result[t.inverse()] = reason
        elif kind == "seq":
            left, right = evals
            right_by_first = {}
            for t in sorted(right):
                right_by_first.setdefault(t.first, []).append(t)
            for t1 in sorted(left):
                for t2 in right_by_first.get(t1.second, []):
                    t = Tuple(t1.first, t2.second)
                    reason = left[t1] | right[t2]
                    if t not in result or reason_key(reason) < reason_key(result[t]):
                        result[t] = reason
        elif kind == "closure":
            result = closure_paths(evals[0])
        return result


def closure_paths(edges):
    """
    Transitive closure of a concrete edge map. The reason for (a, c) is
    collected along a shortest path, found breadth first with neighbours
    visited in event id order.
    """
    succ = {}
    for t in sorted(edges):
        succ.setdefault(t.first, []).append(t)
    result = {}
    for a in sorted(succ):
        seen = {}
        queue = deque()
        for t in succ[a]:
            if t.second not in seen:
                seen[t.second] = edges[t]
                queue.append(t.second)
        while queue:
            b = queue.popleft()
            for t in succ.get(b, []):
                if t.second not in seen:
                    seen[t.second] = seen[b] | edges[t]
                    queue.append(t.second)
        for c, reason in seen.items():
            result[Tuple(a, c)] = reason
    return result


class ModelView:
    """
    A model of the solver as seen by relation evaluation: the set of true
    literals, the execution classes of this round and an evaluation cache.
    """

    def __init__(self, ctx, model):
        self.ctx = ctx
        self.model = set(model)
        self.classes = ExecutionEquivalence(ctx, self.model)
        self.cache = {}

    def holds(self, lit):
        if lit == self.ctx.TRUE:
            return True
        if lit == self.ctx.FALSE:
            return False
        return lit in self.model


############### CONSTRUCTORS ###############

def base(kind, name=None):
    if kind not in STATIC + DYNAMIC or kind == "set":
        raise SpecificationError(f"'{kind}' is not a base relation")
    return Relation(kind, name=name)

def coherence_order(name="co"):
    return Relation("co", name=name)

def union(*operands, name=None):
    return Relation("union", operands, name=name)

def inter(*operands, name=None):
    return Relation("inter", operands, name=name)

def inverse(operand, name=None):
    return Relation("inverse", [operand], name=name)

def seq(*operands, name=None):
    if len(operands) < 2:
        raise SpecificationError("seq needs at least two operands")
    rel = operands[0]
    for i, op in enumerate(operands[1:], start=2):
        rel = Relation("seq", [rel, op], name=name if i == len(operands) else None)
    return rel

def closure(operand, name=None):
    return Relation("closure", [operand], name=name)

def identity(event_filter, name=None):
    return Relation("set", name=name, filters=[event_filter])

def cartesian(filter1, filter2, name=None):
    return Relation("cartesian", name=name, filters=[filter1, filter2])
