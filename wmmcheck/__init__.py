from wmmcheck.axioms import Axiom, acyclic, empty, irreflexive, total
from wmmcheck.encoding import Context, Options
from wmmcheck.equivalence import Equivalence, ExecutionEquivalence, LocationEquivalence
from wmmcheck.errors import InvariantViolation, SpecificationError, UnsupportedError, WmmError
from wmmcheck.models import MemoryModel, sc, tso
from wmmcheck.program import Event, Program, parse_litmus, read_litmus
from wmmcheck.relations import Relation
from wmmcheck.tuples import Tuple, TupleSet
from wmmcheck.verify import FAIL, PASS, UNKNOWN, Result, verify
