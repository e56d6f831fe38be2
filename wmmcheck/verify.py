from threading import Timer
from time import perf_counter

from pysat.solvers import Solver

from wmmcheck import coherence
from wmmcheck.axioms import ALL
from wmmcheck.encoding import Context, Options, info
from wmmcheck.errors import UnsupportedError
from wmmcheck.relations import ModelView

PASS = "PASS"
FAIL = "FAIL"
UNKNOWN = "UNKNOWN"

METHODS = ("eager", "assume", "refinement")

class Result:
    def __init__(self, verdict, rounds=0, time=0.0, execution=None):
        self.verdict = verdict
        self.rounds = rounds
        self.time = time
        # decoded counterexample for FAIL
        self.execution = execution

    def __repr__(self):
        return f"Result({self.verdict}, rounds={self.rounds}, time={self.time:.2f})"

def encode_program(ctx, mm):
    """
    Encodes the execution witness (control flow, reads-from, coherence and
    values) and returns the literal of the reachability condition.
    """
    P = ctx.program
    for e in P.events:
        ctx.executes(e)
    for rel in (mm.rf, mm.co):
        rel.add_encode_tuples(ctx, rel.max_tuple_set(ctx))
        rel.encode(ctx)
    return condition(ctx)

def condition(ctx):
    P = ctx.program
    lits = []
    for thread, target, value in P.condition:
        if thread is None:
            lits.append(ctx.final(target, value))
        else:
            load = P.last_load(thread, target)
            lits.append(ctx.and_([ctx.executes(load), ctx.value(load, value)]))
    return ctx.and_(lits)

def encode_eager(program, mm, options=None):
    """
    The whole problem as one formula: execution, condition and every axiom.
    """
    mm.validate()
    ctx = Context(program, options)
    ctx.assert_(encode_program(ctx, mm))
    for ax in mm.axioms:
        ctx.assert_(ax.consistent(ctx))
    return ctx

def execution(ctx, mm, model):
    """
    Reads the rf edges, coherence positions and load values off a model.
    """
    mset = set(model)
    rf = [t for t in mm.rf.max_tuple_set(ctx) if ctx.edge_var(mm.rf.name, t) in mset]
    values = {}
    for t in rf:
        values[t.second] = t.first.value
    return {
        "rf": rf,
        "co": coherence.positions(mm.co, ctx, model),
        "values": values,
    }

def solve(solver, assumptions, deadline):
    """
    Solves under assumptions; returns None if the deadline passes first.
    """
    if deadline is None:
        return solver.solve(assumptions=assumptions)
    remaining = deadline - perf_counter()
    if remaining <= 0:
        return None
    timer = Timer(remaining, solver.interrupt)
    timer.start()
    try:
        return solver.solve_limited(assumptions=assumptions, expect_interrupt=True)
    finally:
        timer.cancel()
        solver.clear_interrupt()

def minimise(reason, view):
    """
    Drops execution literals implied by an edge literal of the same reason:
    an rf or co edge only holds between executing events.
    """
    covered = set()
    for lit in reason:
        owner = view.ctx.edge_owner.get(lit)
        if owner is not None:
            name, t = owner
            covered |= view.classes.reason([t.first, t.second])
    return sorted(lit for lit in reason if lit not in covered or lit in view.ctx.edge_owner)

def verify(program, mm, options=None):
    """
    Decides whether the condition of program is reachable by an execution
    consistent with the memory model mm. Returns a Result whose verdict is
    FAIL (reachable), PASS (unreachable) or UNKNOWN (time or round limit).
    """
    if options is None:
        options = Options()
    if options.method not in METHODS:
        raise UnsupportedError(f"unknown method '{options.method}'")
    mm.validate()

    t_begin = perf_counter()
    deadline = t_begin + options.time_limit if options.time_limit is not None else None

    ctx = Context(program, options)
    ctx.assert_(encode_program(ctx, mm))
    assumptions = []
    if options.method == "eager":
        for ax in mm.axioms:
            ctx.assert_(ax.consistent(ctx))
    elif options.method == "assume":
        assumptions = [lit for lit in (ax.consistent(ctx) for ax in mm.axioms) if lit != ctx.TRUE]

    if options.verbosity >= 1:
        nv, nc, nl = ctx.stats()
        info(f"Encoded {program.name} under {mm.name}: {nv} variables, {nc} clauses, {nl} literals")

    with Solver(name=options.sat_solver, bootstrap_with=ctx.clauses, use_timer=True) as solver:
        if options.method != "refinement":
            ans = solve(solver, assumptions, deadline)
            result = _result(ctx, mm, solver, ans, 1, t_begin)
        else:
            result = _refine(ctx, mm, solver, deadline, t_begin)

    if options.verbosity >= 1:
        info(f"Verdict for {program.name}: {result.verdict} after {result.rounds} round(s) in {result.time:.2f} sec")
    return result

def _result(ctx, mm, solver, ans, rounds, t_begin):
    t = perf_counter() - t_begin
    if ans is None:
        return Result(UNKNOWN, rounds, t)
    if ans is False:
        return Result(PASS, rounds, t)
    return Result(FAIL, rounds, t, execution(ctx, mm, solver.get_model()))

def _refine(ctx, mm, solver, deadline, t_begin):
    """
    Solves without axioms, then checks each model and strengthens the
    formula with the reasons of the violations it finds.
    """
    options = ctx.options
    sent = len(ctx.clauses)
    eager = set()
    rounds = 0
    while True:
        if options.max_rounds is not None and rounds >= options.max_rounds:
            return Result(UNKNOWN, rounds, perf_counter() - t_begin)
        rounds += 1
        ans = solve(solver, [], deadline)
        if ans is not True:
            return _result(ctx, mm, solver, ans, rounds, t_begin)

        model = solver.get_model()
        view = ModelView(ctx, model)
        view.classes.check_invariant()
        violated = []
        for i, ax in enumerate(mm.axioms):
            if i in eager:
                continue
            reason = ax.violation(view)
            if reason is None:
                continue
            violated.append(ax)
            if reason is ALL:
                ctx.assert_(ax.consistent(ctx))
                eager.add(i)
            else:
                ctx.add([-lit for lit in minimise(reason, view)])

        if not violated:
            return Result(FAIL, rounds, perf_counter() - t_begin, execution(ctx, mm, model))
        if options.verbosity >= 2:
            info(f"Round {rounds}: spurious model violates {', '.join(map(repr, violated))}")
        for clause in ctx.clauses[sent:]:
            solver.add_clause(clause)
        sent = len(ctx.clauses)
