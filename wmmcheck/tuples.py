from collections import defaultdict

class Tuple:
    """
    An ordered pair of events, i.e. one candidate edge of a relation.
    """

    __slots__ = ("first", "second")

    def __init__(self, first, second):
        self.first = first
        self.second = second

    def inverse(self):
        return Tuple(self.second, self.first)

    def key(self):
        return (self.first.eid, self.second.eid)

    def __eq__(self, other):
        return isinstance(other, Tuple) and self.first == other.first and self.second == other.second

    def __hash__(self):
        return hash((self.first.eid, self.second.eid))

    def __lt__(self, other):
        return self.key() < other.key()

    def __iter__(self):
        yield self.first
        yield self.second

    def __repr__(self):
        return f"({self.first.eid},{self.second.eid})"


class TupleSet:
    """
    A set of unique tuples with the relational operations the encoding needs.
    Iteration is ordered by event ids, so everything built on top of it is
    deterministic.
    """

    def __init__(self, tuples=None):
        self._tuples = set()
        self._by_first = defaultdict(set)
        self._by_second = defaultdict(set)
        if tuples is not None:
            self.update(tuples)

    @classmethod
    def of_pairs(cls, pairs):
        return cls(Tuple(a, b) for a, b in pairs)

    def add(self, t):
        if t in self._tuples:
            return False
        self._tuples.add(t)
        self._by_first[t.first].add(t.second)
        self._by_second[t.second].add(t.first)
        return True

    def update(self, tuples):
        changed = False
        for t in tuples:
            changed |= self.add(t)
        return changed

    def union(self, other):
        result = TupleSet(self._tuples)
        result.update(other)
        return result

    def intersection(self, other):
        return TupleSet(t for t in self._tuples if t in other)

    def difference(self, other):
        return TupleSet(t for t in self._tuples if t not in other)

    def filter(self, pred):
        return TupleSet(t for t in self._tuples if pred(t))

    def inverse(self):
        return TupleSet(t.inverse() for t in self._tuples)

    def domain(self):
        return {e for e, seconds in self._by_first.items() if seconds}

    def range(self):
        return {e for e, firsts in self._by_second.items() if firsts}

    def field(self):
        return self.domain() | self.range()

    def successors(self, e):
        return self._by_first.get(e, set())

    def predecessors(self, e):
        return self._by_second.get(e, set())

    def compose(self, other):
        """
        Relational composition: (a,c) is in the result iff some b has (a,b)
        in self and (b,c) in other. Only intermediates in the range of self
        and the domain of other are visited.
        """
        result = TupleSet()
        for b in sorted(self.range()):
            for c in other.successors(b):
                for a in self.predecessors(b):
                    result.add(Tuple(a, c))
        return result

    def witnesses(self, other, a, c):
        """
        The intermediates b with (a,b) in self and (b,c) in other.
        """
        return sorted(self.successors(a) & other.predecessors(c))

    def __contains__(self, t):
        return t in self._tuples

    def __len__(self):
        return len(self._tuples)

    def __iter__(self):
        return iter(sorted(self._tuples))

    def __eq__(self, other):
        if isinstance(other, TupleSet):
            return self._tuples == other._tuples
        return NotImplemented

    def __le__(self, other):
        return self._tuples <= other._tuples

    def __repr__(self):
        return "{" + ",".join(map(repr, sorted(self._tuples))) + "}"
