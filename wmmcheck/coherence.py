"""
Coherence order: a total order of the writes to each location, starting
with the init write.

Instead of encoding transitivity pairwise, every write gets an integer
position in 1..n (n = number of writes to its location, init included) and
co(w1, w2) is tied to pos(w1) < pos(w2). Positions are order encoded:
ge(w, k) says pos(w) >= k, so ge(w, 1) is always true and ge(w, n+1) always
false. The init write sits at position 1.
"""

from wmmcheck.encoding import implies
from wmmcheck.program import INIT
from wmmcheck.tuples import Tuple, TupleSet

def location_writes(ctx):
    """
    Yields (address, writes) for every location, writes sorted by event id.
    """
    for address, c in sorted(ctx.locations.by_address.items()):
        yield address, [e for e in c if e.is_write()]

def max_tuple_set(rel, ctx):
    ts = TupleSet()
    for address, writes in location_writes(ctx):
        for w1 in writes:
            for w2 in writes:
                if w1 != w2 and w2.kind != INIT:
                    ts.add(Tuple(w1, w2))
    return ts

def ge(rel, ctx, w, k, n):
    if k <= 1:
        return ctx.TRUE
    if k > n or w.kind == INIT:
        return ctx.FALSE
    return ctx.var(f"{rel.name}@ge[{w.eid},{k}]")

def encode(rel, ctx):
    for address, writes in location_writes(ctx):
        n = len(writes)

        # order encoding: pos >= k+1 implies pos >= k
        for w in writes:
            for k in range(2, n):
                ctx.add([-ge(rel, ctx, w, k+1, n), ge(rel, ctx, w, k, n)])

        for w1 in writes:
            x1 = ctx.executes(w1)
            for w2 in writes:
                if w1 == w2:
                    continue
                x2 = ctx.executes(w2)
                e12 = rel.edge(ctx, w1, w2)

                ctx.extend(implies([e12], [x1, x2]))

                # co(w1, w2) -> pos(w1) < pos(w2)
                for k in range(1, n+1):
                    ctx.add([-e12, -ge(rel, ctx, w1, k, n), ge(rel, ctx, w2, k+1, n)])

                # both execute and pos(w1) < pos(w2) -> co(w1, w2)
                for k in range(1, n):
                    ctx.add([-x1, -x2, ge(rel, ctx, w1, k+1, n), -ge(rel, ctx, w2, k+1, n), e12])

                if w1 < w2:
                    # totality
                    ctx.add([-x1, -x2, e12, rel.edge(ctx, w2, w1)])
                    # distinct positions
                    for k in range(1, n+1):
                        ctx.add([-x1, -x2,
                            -ge(rel, ctx, w1, k, n), ge(rel, ctx, w1, k+1, n),
                            -ge(rel, ctx, w2, k, n), ge(rel, ctx, w2, k+1, n)])

        # the write that is last in co determines the final value
        for w in writes:
            last = ctx.and_([ctx.executes(w)] + [-rel.edge(ctx, w, w2) for w2 in writes if w2 != w])
            ctx.add([-last, ctx.final(address, w.value)])
        ctx.at_most_one([ctx.final(address, v) for v in ctx.program.values(address)])

def positions(rel, ctx, model):
    """
    Decodes the position of every write that executes in model.
    """
    mset = set(model)
    pos = {}
    for address, writes in location_writes(ctx):
        n = len(writes)
        for w in writes:
            x = ctx.executes(w)
            if x != ctx.TRUE and x not in mset:
                continue
            p = 1
            for k in range(2, n+1):
                lit = ge(rel, ctx, w, k, n)
                if lit == ctx.TRUE or lit in mset:
                    p = k
            pos[w] = p
    return pos
