from pysat.card import CardEnc, EncType
from pysat.formula import IDPool
from datetime import datetime

from wmmcheck.equivalence import LocationEquivalence
from wmmcheck.errors import InvariantViolation
from wmmcheck.program import LOAD

def info(msg : str):
    print(f"wmmcheck INFO {datetime.now():%d.%m.%Y %H:%M:%S}: {msg}")

def bulk_info(msg_list : list):
    for msg in msg_list:
        info(msg)

# convenience class to specify options for library usage
class Options:
    def __init__(self):
        self.verbosity = 0
        self.sat_solver = "glucose4"
        self.card = EncType.seqcounter
        self.method = "refinement"
        self.time_limit = None
        self.max_rounds = None

def implies(preconditions, postconditions):
    """
    Returns a set of clauses that encode that the
    conjunction of preconditions implies the conjunction
    of postconditions
    """
    neg_preconditions = [-x for x in preconditions]
    return [neg_preconditions + [x] for x in postconditions]

def maxvar(clauses):
    return max([0] + [max(abs(lit) for lit in clause) for clause in clauses if len(clause) > 0])

def size(F):
    return sum(len(c) for c in F)

class Context:
    """
    Everything an encoding step needs: the program, the variable pool and
    the clauses produced so far. Literals are plain DIMACS integers; the
    constants are ctx.TRUE and ctx.FALSE.
    """

    def __init__(self, program, options=None):
        self.program = program
        self.options = options if options is not None else Options()
        self.vp = IDPool()
        self.clauses = []
        self.TRUE = self.vp.id("true")
        self.FALSE = -self.TRUE
        self.clauses.append([self.TRUE])
        # maps named edge variables back to (relation name, tuple)
        self.edge_owner = {}
        self._gates = {}
        self._values_encoded = set()
        self._locations = None

    @property
    def locations(self):
        """
        Memory events partitioned by address, computed once per context.
        """
        if self._locations is None:
            self._locations = LocationEquivalence(self.program)
        return self._locations

    def var(self, name):
        return self.vp.id(name)

    def edge_var(self, name, t):
        v = self.vp.id(f"{name}[{t.first.eid},{t.second.eid}]")
        self.edge_owner[v] = (name, t)
        return v

    def add(self, clause):
        """
        Adds a clause, dropping it if it is satisfied by TRUE.
        """
        if self.TRUE in clause:
            return
        clause = [lit for lit in clause if lit != self.FALSE]
        self.clauses.append(clause if clause else [self.FALSE])

    def extend(self, clauses):
        for clause in clauses:
            self.add(clause)

    def assert_(self, lit):
        if lit != self.TRUE:
            self.add([lit])

    def define(self, var, lit):
        """
        var <-> lit
        """
        self.add([-var, lit])
        self.add([var, -lit])

    def and_(self, lits):
        lits = set(lits)
        if self.FALSE in lits:
            return self.FALSE
        lits.discard(self.TRUE)
        if len(lits) == 0:
            return self.TRUE
        if any(-lit in lits for lit in lits):
            return self.FALSE
        if len(lits) == 1:
            return lits.pop()
        key = frozenset(lits)
        gate = self._gates.get(key)
        if gate is None:
            gate = self.vp.id(("and", key))
            self._gates[key] = gate
            self.extend([[-gate, lit] for lit in sorted(lits)])
            self.add([gate] + [-lit for lit in sorted(lits)])
        return gate

    def or_(self, lits):
        return -self.and_([-lit for lit in lits])

    def at_most_one(self, lits):
        lits = [lit for lit in lits if lit != self.FALSE]
        if len(lits) <= 1:
            return
        self.extend(CardEnc.atmost(lits, bound=1, encoding=self.options.card, vpool=self.vp).clauses)

    def executes(self, e):
        """
        True iff e lies on the taken control path. Events guarded by a load
        execute iff that load executes and reads the guard value.
        """
        if e.guard is None:
            return self.TRUE
        load_eid, value = e.guard
        load = self.program.event(load_eid)
        return self.and_([self.executes(load), self.value(load, value)])

    def value(self, load, v):
        """
        The literal saying that load reads value v.
        """
        if load.kind != LOAD:
            raise InvariantViolation(f"value literal requested for non-load {load}")
        values = self.program.values(load.address)
        if v not in values:
            return self.FALSE
        if load.eid not in self._values_encoded:
            self._values_encoded.add(load.eid)
            lits = [self.vp.id(f"val[{load.eid},{w}]") for w in values]
            # an executing load reads exactly one value
            exec_load = self.executes(load)
            self.add([-exec_load] + lits)
            for lit in lits:
                self.extend(implies([lit], [exec_load]))
            self.at_most_one(lits)
        return self.vp.id(f"val[{load.eid},{v}]")

    def final(self, address, v):
        """
        The literal saying that the final value of address is v.
        """
        if v not in self.program.values(address):
            return self.FALSE
        return self.vp.id(f"final[{address},{v}]")

    def stats(self):
        return maxvar(self.clauses), len(self.clauses), size(self.clauses)
