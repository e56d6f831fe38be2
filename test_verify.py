#!/usr/bin/env python3

import sys
from time import perf_counter

import pytest
from pysat.examples.genhard import PHP
from pysat.solvers import Solver

from wmmcheck import cli
from wmmcheck import models
from wmmcheck.encoding import Options
from wmmcheck.errors import SpecificationError, UnsupportedError
from wmmcheck.models import sc, tso
from wmmcheck.program import parse_litmus, read_litmus
from wmmcheck.relations import cartesian, identity, inter, seq, union
from wmmcheck.verify import FAIL, METHODS, PASS, UNKNOWN, solve, verify

SB = """
# store buffering
thread 0
W x 1
R y r1
thread 1
W y 1
R x r2
exists 0:r1=0 /\\ 1:r2=0
"""

SB_FENCED = """
thread 0
W x 1
F mfence
R y r1
thread 1
W y 1
F mfence
R x r2
exists 0:r1=0 /\\ 1:r2=0
"""

MP = """
thread 0
W x 1
W y 1
thread 1
R y r1
R x r2
exists 1:r1=1 /\\ 1:r2=0
"""

CORR = """
thread 0
W x 1
thread 1
R x r1
R x r2
exists 1:r1=1 /\\ 1:r2=0
"""

GUARDED = """
init y=0
thread 0
R y r1
W x 1 if r1=1
thread 1
W y 1
exists 0:r1=1 /\\ x=0
"""

def options(method, **kwargs):
    opts = Options()
    opts.method = method
    for key, value in kwargs.items():
        setattr(opts, key, value)
    return opts

def check(text, model, expected):
    for method in METHODS:
        result = verify(parse_litmus(text), model(), options(method))
        assert result.verdict == expected, f"{method}: {result}"
        assert result.rounds >= 1

def test_store_buffering():
    check(SB, sc, PASS)
    check(SB, tso, FAIL)
    check(SB_FENCED, tso, PASS)

def test_message_passing():
    check(MP, sc, PASS)
    check(MP, tso, PASS)

def test_read_read_coherence():
    check(CORR, sc, PASS)
    check(CORR, tso, PASS)

def test_final_values():
    two_stores = "thread 0\nW x 1\nthread 1\nW x 2\n"
    check(two_stores + "exists x=1", tso, FAIL)
    check(two_stores + "exists x=2", sc, FAIL)
    # init is overwritten by any store that runs
    check(two_stores + "exists x=0", tso, PASS)

def test_guarded_store():
    check(GUARDED, tso, PASS)
    check(GUARDED.replace("0:r1=1 /\\ x=0", "x=1"), tso, FAIL)
    check(GUARDED.replace("0:r1=1 /\\ x=0", "0:r1=0 /\\ x=0"), sc, FAIL)

def test_counterexample():
    result = verify(parse_litmus(SB), tso(), options("refinement"))
    assert result.verdict == FAIL
    values = {e.register: v for e, v in result.execution["values"].items()}
    assert values == {"r1": 0, "r2": 0}
    # init writes come first in coherence
    for w, p in result.execution["co"].items():
        assert (p == 1) == (w.kind == "init")

def test_refinement_needs_rounds():
    result = verify(parse_litmus(SB), sc(), options("refinement"))
    assert result.verdict == PASS
    assert result.rounds >= 2

def test_limits():
    result = verify(parse_litmus(SB), sc(), options("refinement", max_rounds=0))
    assert result.verdict == UNKNOWN
    assert result.rounds == 0
    for method in METHODS:
        result = verify(parse_litmus(SB), sc(), options(method, time_limit=0))
        assert result.verdict == UNKNOWN

def test_solve_is_interrupted():
    """
    13 pigeons do not fit into 12 holes, but no solver proves it in 0.2s.
    """
    php = PHP(12)
    with Solver(name="glucose4", bootstrap_with=php.clauses) as s:
        t_begin = perf_counter()
        assert solve(s, [], t_begin + 0.2) is None
        assert perf_counter() - t_begin < 10

class NoInterruptSolver:
    def __init__(self):
        self.cleared = False

    def interrupt(self):
        pass

    def solve_limited(self, assumptions, expect_interrupt):
        raise NotImplementedError("interruption is not supported")

    def clear_interrupt(self):
        self.cleared = True

def test_solve_cleans_up_on_error():
    s = NoInterruptSolver()
    with pytest.raises(NotImplementedError):
        solve(s, [], perf_counter() + 60)
    assert s.cleared

def tso_with_callables():
    """
    x86-TSO with every event filter given as a function.
    """
    is_write = lambda e: e.is_write()
    is_read = lambda e: e.is_read()
    is_memory = lambda e: e.is_memory()
    m = models.MemoryModel("tso-callables")
    models._communication(m)
    m.define("rfe", inter(m.rf, m.get("ext")))
    m.define("ppo", inter(m.get("po"), union(cartesian(is_write, is_write), cartesian(is_read, is_memory))))
    m.define("mfence", seq(m.get("po"), identity(lambda e: e.fence == "mfence"), m.get("po")))
    m.define("ghb", union(m.get("ppo"), m.get("rfe"), m.co, m.get("fr"), m.get("mfence")))
    m.add_axiom("acyclic", "ghb")
    return m

def test_callable_filters():
    check(SB, tso_with_callables, FAIL)
    check(SB_FENCED, tso_with_callables, PASS)
    check(MP, tso_with_callables, PASS)

def test_unknown_method():
    with pytest.raises(UnsupportedError):
        verify(parse_litmus(SB), sc(), options("lazy"))

def test_litmus_errors():
    bad = [
        "W x 1",
        "thread 1\nW x 1",
        "thread 0\nW x one",
        "thread 0\nR x r1\nexists 0:r9=1",
        "thread 0\nR x r1\nexists y=1",
        "thread 0\nW x 1 if r1=1",
        "thread 0\nW x 1\ninit x=1",
        "thread 0\nR x r1\nexists 0:r1",
    ]
    for text in bad:
        with pytest.raises(SpecificationError):
            parse_litmus(text)

def test_read_litmus(tmp_path):
    path = tmp_path / "SB.litmus"
    path.write_text(SB)
    P = read_litmus(path)
    assert P.name == "SB"
    assert len(P.threads) == 2
    assert P.locations == ["x", "y"]
    assert P.condition == [(0, "r1", 0), (1, "r2", 0)]

def test_cli(tmp_path, monkeypatch, capsys):
    path = tmp_path / "MP.litmus"
    path.write_text(MP)
    monkeypatch.setattr(sys, "argv", ["wmmcheck", str(path), "-q"])
    with pytest.raises(SystemExit) as e:
        cli.main()
    assert e.value.code == 20
    assert capsys.readouterr().out.startswith("MP PASS")

    monkeypatch.setattr(sys, "argv", ["wmmcheck", str(path), "--query"])
    cli.main()
    assert capsys.readouterr().out.startswith("p cnf ")

    path = tmp_path / "SB.litmus"
    path.write_text(SB)
    monkeypatch.setattr(sys, "argv", ["wmmcheck", str(path), "-v"])
    with pytest.raises(SystemExit) as e:
        cli.main()
    assert e.value.code == 10
    out = capsys.readouterr().out
    assert "co position 1" in out
    assert out.splitlines()[-1].startswith("SB FAIL")

    monkeypatch.setattr(sys, "argv", ["wmmcheck", str(tmp_path / "missing.litmus")])
    with pytest.raises(SystemExit) as e:
        cli.main()
    assert e.value.code == -1
    assert capsys.readouterr().err.startswith("ERROR: ")

if __name__ == "__main__":
    test_store_buffering()
    test_message_passing()
    test_read_read_coherence()
    test_final_values()
    test_guarded_store()
    test_counterexample()
    test_refinement_needs_rounds()
    test_limits()
    test_solve_is_interrupted()
    test_solve_cleans_up_on_error()
    test_callable_filters()
    test_unknown_method()
    test_litmus_errors()
    print("VERIFY: OK")
