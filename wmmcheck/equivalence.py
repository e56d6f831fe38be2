from collections import defaultdict

from wmmcheck.errors import InvariantViolation

class EqClass:
    """
    One class of an Equivalence. Classes compare by identity; membership
    changes go through add_internal so that the owning partition stays
    consistent.
    """

    def __init__(self, equivalence):
        self.equivalence = equivalence
        self.members = set()
        self.representative = None
        equivalence._classes[self] = None

    def add_internal(self, x):
        if x in self.members:
            return False
        eq = self.equivalence
        old = eq._class_map.get(x)
        if old is not None:
            old.members.discard(x)
            if old.representative == x:
                old.representative = eq._pick(old.members)
            if len(old.members) == 0:
                eq._drop(old)
        self.members.add(x)
        eq._class_map[x] = self
        return True

    def add_all_internal(self, xs):
        changed = False
        for x in xs:
            changed |= self.add_internal(x)
        return changed

    def set_representative(self, x):
        if x in self.members:
            self.representative = x

    def __contains__(self, x):
        return x in self.members

    def __iter__(self):
        return iter(self.equivalence._sorted(self.members))

    def __len__(self):
        return len(self.members)

    def __repr__(self):
        return "{" + ", ".join(map(repr, self)) + "}"


class Equivalence:
    """
    A partition of a growing universe into disjoint, non-empty classes.

    Every element in the lookup map belongs to exactly one live class and
    every live class is non-empty. Representatives default to the smallest
    member under key, which keeps refinement deterministic across runs.
    """

    def __init__(self, key=None):
        self.key = key
        self._class_map = {}
        # live classes in creation order; EqClass hashes by identity
        self._classes = {}

    def _sorted(self, xs):
        return sorted(xs, key=self.key)

    def _pick(self, members):
        return min(members, key=self.key) if members else None

    def _drop(self, c):
        self._classes.pop(c, None)

    def new_class(self, members=()):
        c = EqClass(self)
        c.add_all_internal(members)
        c.representative = self._pick(c.members)
        return c

    def class_of(self, x):
        return self._class_map.get(x)

    def representative(self, x):
        c = self._class_map.get(x)
        if c is None:
            raise InvariantViolation(f"{x!r} has no equivalence class")
        return c.representative

    def equivalent(self, x, y):
        c = self._class_map.get(x)
        return c is not None and c is self._class_map.get(y)

    @property
    def classes(self):
        return list(self._classes)

    def merge_classes(self, first, second):
        """
        Moves every member of second into first and retires second.
        """
        if first is second:
            return
        first.members |= second.members
        for x in second.members:
            self._class_map[x] = first
        if first.representative is None:
            first.representative = second.representative
        second.members = set()
        second.representative = None
        self._drop(second)

    def remove_class(self, c):
        """
        Evicts c and its members; former members have no class afterwards.
        """
        if c not in self._classes:
            return False
        self._drop(c)
        for x in c.members:
            if self._class_map.get(x) is c:
                del self._class_map[x]
        return True

    def remove_empty_classes(self):
        before = len(self._classes)
        self._classes = {c: None for c in self._classes if len(c.members) > 0}
        return len(self._classes) != before

    def check_invariant(self):
        for x, c in self._class_map.items():
            if c not in self._classes or x not in c.members:
                raise InvariantViolation(f"{x!r} maps to a stale class")
        for c in self._classes:
            if len(c.members) == 0:
                raise InvariantViolation("empty class in the partition")
            if c.representative is not None and c.representative not in c.members:
                raise InvariantViolation(f"representative {c.representative!r} is not a member")
            for x in c.members:
                if self._class_map.get(x) is not c:
                    raise InvariantViolation(f"{x!r} is not mapped to its class")

    def __len__(self):
        return len(self._classes)


class LocationEquivalence(Equivalence):
    """
    Memory events grouped by address; the init write represents its class.
    """

    def __init__(self, program):
        super().__init__()
        groups = defaultdict(list)
        for e in program.memory_events():
            groups[e.address].append(e)
        self.by_address = {}
        for address in sorted(groups):
            c = self.new_class(groups[address])
            c.set_representative(program.init_events[address])
            self.by_address[address] = c

    def same_location(self, a, b):
        return self.equivalent(a, b)


class ExecutionEquivalence(Equivalence):
    """
    The events executing in a model, grouped by their execution literal.
    Built fresh for every refinement round. Unconditional events carry no
    information and are evicted, so class_of returns None for them.
    """

    def __init__(self, ctx, model):
        super().__init__()
        self.ctx = ctx
        groups = defaultdict(list)
        for e in ctx.program.events:
            lit = ctx.executes(e)
            if lit == ctx.TRUE or lit in model:
                groups[lit].append(e)
        always = None
        for lit in sorted(groups, key=abs):
            c = self.new_class(groups[lit])
            if lit == ctx.TRUE:
                always = c
        if always is not None:
            self.remove_class(always)

    def literal(self, e):
        """
        The execution literal of e's class, or None if e always executes.
        """
        c = self.class_of(e)
        if c is None:
            if self.ctx.executes(e) != self.ctx.TRUE:
                raise InvariantViolation(f"{e!r} does not execute in the model")
            return None
        return self.ctx.executes(c.representative)

    def reason(self, events):
        lits = set()
        for e in events:
            lit = self.literal(e)
            if lit is not None:
                lits.add(lit)
        return lits
