#!/usr/bin/env python3

import pytest
from pysat.solvers import Solver

from wmmcheck import models
from wmmcheck import relations as rel
from wmmcheck.axioms import ALL, Axiom, acyclic, empty, irreflexive, total
from wmmcheck.encoding import Context
from wmmcheck.errors import SpecificationError, UnsupportedError
from wmmcheck.program import Program, parse_litmus
from wmmcheck.relations import ModelView
from wmmcheck.verify import encode_program

SB = """
thread 0
W x 1
R y r1
thread 1
W y 1
R x r2
exists 0:r1=0 /\\ 1:r2=0
"""

def sb(mm):
    ctx = Context(parse_litmus(SB, "SB"))
    ctx.assert_(encode_program(ctx, mm))
    return ctx

def test_trivial_axiom_adds_nothing():
    P = Program()
    t = P.new_thread()
    P.store(t, "x", 1)
    ctx = Context(P)
    before = len(ctx.clauses)
    for ax in [empty(rel.identity("F")), acyclic(rel.base("po")), total(rel.base("po"))]:
        assert ax.is_trivial(ctx)
        assert ax.consistent(ctx) == ctx.TRUE
        assert ax.inconsistent(ctx) == ctx.FALSE
    assert len(ctx.clauses) == before

def test_negate_swaps_literals():
    mm = models.sc()
    ctx = sb(mm)
    sc_order = mm.axioms[-1]
    c = sc_order.consistent(ctx)
    assert sc_order.inconsistent(ctx) == -c
    negated = Axiom(sc_order.kind, sc_order.rel, negate=True)
    assert negated.consistent(ctx) == -c
    assert negated.inconsistent(ctx) == c

def test_sc_forbids_store_buffering():
    mm = models.sc()
    ctx = sb(mm)
    lits = [ax.consistent(ctx) for ax in mm.axioms]
    with Solver(name="glucose4", bootstrap_with=ctx.clauses) as s:
        assert s.solve()
        assert not s.solve(assumptions=lits)
        assert s.solve(assumptions=[lits[0], -lits[-1]])

def test_tso_allows_store_buffering():
    mm = models.tso()
    ctx = sb(mm)
    lits = [ax.consistent(ctx) for ax in mm.axioms]
    with Solver(name="glucose4", bootstrap_with=ctx.clauses) as s:
        assert s.solve(assumptions=lits)

def test_violation_reason():
    mm = models.sc()
    ctx = sb(mm)
    uniproc, sc_order = mm.axioms
    with Solver(name="glucose4", bootstrap_with=ctx.clauses) as s:
        assert s.solve()
        model = s.get_model()
        view = ModelView(ctx, model)
        assert uniproc.violation(view) is None
        reason = sc_order.violation(view)
        assert reason is not None and reason is not ALL
        assert len(reason) > 0
        assert all(lit in view.model for lit in reason)
        # the same reason rules out every model sharing it
        s.add_clause([-lit for lit in reason])
        assert not s.solve()

    negated = Axiom("acyclic", sc_order.rel, negate=True)
    assert negated.violation(view) is None
    assert Axiom("acyclic", uniproc.rel, negate=True).violation(view) is ALL

def test_tso_model_has_no_violation():
    mm = models.tso()
    ctx = sb(mm)
    with Solver(name="glucose4", bootstrap_with=ctx.clauses) as s:
        assert s.solve()
        view = ModelView(ctx, s.get_model())
    assert all(ax.violation(view) is None for ax in mm.axioms)

def test_total():
    P = Program()
    t0 = P.new_thread()
    t1 = P.new_thread()
    P.store(t0, "x", 1)
    P.store(t1, "x", 2)
    ctx = Context(P)
    co_total = total(rel.coherence_order())
    assert not co_total.is_trivial(ctx)
    c = co_total.consistent(ctx)
    with Solver(name="glucose4", bootstrap_with=ctx.clauses) as s:
        assert s.solve(assumptions=[c])
        assert not s.solve(assumptions=[-c])
        view = ModelView(ctx, s.get_model())
    assert co_total.violation(view) is None

    P = Program()
    t0 = P.new_thread()
    t1 = P.new_thread()
    for t in (t0, t1):
        P.store(t, "x", t + 1)
        P.store(t, "y", t + 1)
    ctx = Context(P)
    po_total = total(rel.base("po"))
    d = po_total.consistent(ctx)
    with Solver(name="glucose4", bootstrap_with=ctx.clauses) as s:
        # stores of different threads are never po-ordered
        assert not s.solve(assumptions=[d])
        assert s.solve()
        view = ModelView(ctx, s.get_model())
    assert po_total.violation(view) is ALL

def test_irreflexive():
    P = parse_litmus(SB)
    ctx = Context(P)
    po = rel.base("po")
    back = rel.seq(po, rel.inverse(po))
    ax = irreflexive(back)
    assert not ax.is_trivial(ctx)
    c = ax.consistent(ctx)
    with Solver(name="glucose4", bootstrap_with=ctx.clauses) as s:
        assert not s.solve(assumptions=[c])
    assert irreflexive(po).consistent(ctx) == ctx.TRUE

def test_malformed_axioms():
    with pytest.raises(UnsupportedError):
        Axiom("bogus", rel.base("po"))
    with pytest.raises(SpecificationError):
        Axiom("empty", "po")
    mm = models.MemoryModel()
    with pytest.raises(SpecificationError):
        mm.add_axiom("acyclic", "hb")
    with pytest.raises(SpecificationError):
        mm.define("po", rel.base("po"))
    mm.define("hb", rel.union(mm.get("po"), mm.rf))
    with pytest.raises(SpecificationError):
        mm.define("hb2", mm.get("hb"))

if __name__ == "__main__":
    test_trivial_axiom_adds_nothing()
    test_negate_swaps_literals()
    test_sc_forbids_store_buffering()
    test_tso_allows_store_buffering()
    test_violation_reason()
    test_tso_model_has_no_violation()
    test_total()
    test_irreflexive()
    test_malformed_axioms()
    print("AXIOMS: OK")
