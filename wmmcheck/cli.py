import argparse
import sys

from pysat.card import EncType

from wmmcheck.encoding import Options, bulk_info, maxvar
from wmmcheck.errors import WmmError
from wmmcheck.models import MODELS
from wmmcheck.program import read_litmus
from wmmcheck.verify import METHODS, encode_eager, verify

def print_formula(F):
    print(f"p cnf {maxvar(F)} {len(F)}")
    print("".join((" ".join(map(str, clause)) + " 0\n") for clause in F), end="")

def print_execution(execution):
    bulk_info([f"  rf {t.first!r} -> {t.second!r}" for t in execution["rf"]]
            + [f"  co position {p}: {w!r}" for w, p in sorted(execution["co"].items())])

def main():
    parser = argparse.ArgumentParser(description="check reachability of a litmus test condition under a weak memory model")
    parser.add_argument("litmus",
            help="filename of the litmus test")
    parser.add_argument("--model", "-m",
            help="memory model",
            default="tso",
            choices=sorted(MODELS))
    parser.add_argument("--method",
            help="how axioms reach the solver",
            default="refinement",
            choices=METHODS)
    parser.add_argument("--sat-solver",
            help="PySAT solver name; the time limit needs one that supports interruption (glucose4, minisat22, maplesat, ...)",
            default="glucose4")
    parser.add_argument("--card",
            help="type of cardinality constraint to use",
            default="seqcounter",
            choices=[
                "pairwise",
                "seqcounter",
                "sortnetwrk",
                "totalizer",
                "mtotalizer",
                "kmtotalizer"])
    parser.add_argument("--time-limit", "-t",
            type=int,
            help="time limit for the entire computation in seconds")
    parser.add_argument("--max-rounds",
            type=int,
            help="maximal number of refinement rounds")
    parser.add_argument("--query",
            action="store_true",
            help="don't solve, only print the eager encoding in DIMACS")
    parser.add_argument("-v", "--verbosity",
            default=1,
            action="count",
            help="increase verbosity")
    parser.add_argument("-q", "--quiet",
            action="store_true",
            help="disable additional output")

    args = parser.parse_args()

    options = Options()
    options.verbosity = 0 if args.quiet else args.verbosity
    options.sat_solver = {"glucose": "glucose4", "minisat": "minisat22"}.get(args.sat_solver, args.sat_solver)
    options.card = {
            "pairwise"    : EncType.pairwise,
            "seqcounter"  : EncType.seqcounter,
            "sortnetwrk"  : EncType.sortnetwrk,
            "totalizer"   : EncType.totalizer,
            "mtotalizer"  : EncType.mtotalizer,
            "kmtotalizer" : EncType.kmtotalizer
            }[args.card]
    options.method = args.method
    options.time_limit = args.time_limit
    options.max_rounds = args.max_rounds

    try:
        program = read_litmus(args.litmus)
        mm = MODELS[args.model]()
        if args.query:
            print_formula(encode_eager(program, mm, options).clauses)
            return
        result = verify(program, mm, options)
    except (WmmError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(-1)

    if result.execution is not None and options.verbosity >= 2:
        print_execution(result.execution)
    print(f"{program.name} {result.verdict} {result.rounds} {result.time:.2f}s")
    sys.exit({"FAIL": 10, "PASS": 20}.get(result.verdict, 0))

if __name__ == "__main__":
    main()
