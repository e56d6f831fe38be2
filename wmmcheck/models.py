from wmmcheck.axioms import Axiom
from wmmcheck.errors import SpecificationError
from wmmcheck.relations import (Relation, base, cartesian, coherence_order,
        identity, inter, inverse, seq, union)

PREDEFINED = ("po", "int", "ext", "id", "loc", "rf")

class MemoryModel:
    """
    Named relations and the axioms over them. The base relations po, int,
    ext, id, loc, rf and co always exist.
    """

    def __init__(self, name="model"):
        self.name = name
        self.relations = {}
        self.axioms = []
        for kind in PREDEFINED:
            self.relations[kind] = base(kind)
        self.relations["co"] = coherence_order()

    @property
    def rf(self):
        return self.relations["rf"]

    @property
    def co(self):
        return self.relations["co"]

    def define(self, name, rel):
        if name in self.relations:
            raise SpecificationError(f"relation '{name}' is defined twice")
        if not isinstance(rel, Relation):
            raise SpecificationError(f"'{name}' is not bound to a relation")
        if any(r is rel for r in self.relations.values()):
            raise SpecificationError(f"relation {rel.name} is already named, cannot also name it '{name}'")
        rel.name = name
        self.relations[name] = rel
        return rel

    def get(self, name):
        if name not in self.relations:
            raise SpecificationError(f"undefined relation '{name}'")
        return self.relations[name]

    def add_axiom(self, kind, rel, negate=False):
        if isinstance(rel, str):
            rel = self.get(rel)
        axiom = Axiom(kind, rel, negate)
        self.axioms.append(axiom)
        return axiom

    def validate(self):
        """
        Checks that no two different relations share a name, since names
        label the edge variables. Relations spelling the same term may.
        """
        seen = {}
        stack = [ax.target for ax in self.axioms] + list(self.relations.values())
        while stack:
            rel = stack.pop()
            other = seen.get(rel.name)
            if other is None:
                seen[rel.name] = rel
                stack.extend(rel.operands)
            elif not rel.same_structure(other):
                raise SpecificationError(f"two different relations are named '{rel.name}'")

    def __repr__(self):
        return f"MemoryModel({self.name}: {', '.join(map(repr, self.axioms))})"


def _communication(m):
    m.define("fr", seq(inverse(m.rf), m.co))
    m.define("com", union(m.rf, m.co, m.get("fr")))
    m.define("po-loc", inter(m.get("po"), m.get("loc")))
    m.add_axiom("acyclic", union(m.get("po-loc"), m.get("com"), name="uniproc"))

def sc():
    """
    Sequential consistency.
    """
    m = MemoryModel("sc")
    _communication(m)
    m.add_axiom("acyclic", union(m.get("po"), m.get("com"), name="sc-order"))
    return m

def tso():
    """
    x86-TSO: program order minus store-load pairs, restored by mfence.
    """
    m = MemoryModel("tso")
    _communication(m)
    m.define("rfe", inter(m.rf, m.get("ext")))
    m.define("ppo", inter(m.get("po"), union(cartesian("W", "W"), cartesian("R", "M"))))
    m.define("mfence", seq(m.get("po"), identity("mfence"), m.get("po")))
    m.define("ghb", union(m.get("ppo"), m.get("rfe"), m.co, m.get("fr"), m.get("mfence")))
    m.add_axiom("acyclic", "ghb")
    return m

MODELS = {
    "sc": sc,
    "tso": tso,
}
