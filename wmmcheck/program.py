import re
from pathlib import Path

from wmmcheck.errors import SpecificationError

# event kinds
INIT = "init"
STORE = "store"
LOAD = "load"
FENCE = "fence"

class Event:
    """
    One event of a compiled program. Events are created by Program and
    never change afterwards; equality and hashing go through the event id.
    """

    __slots__ = ("eid", "thread", "index", "kind", "address", "value",
            "register", "fence", "guard", "tags")

    def __init__(self, eid, thread, index, kind, address=None, value=None,
            register=None, fence=None, guard=None):
        self.eid = eid
        self.thread = thread
        self.index = index
        self.kind = kind
        self.address = address
        self.value = value
        self.register = register
        self.fence = fence
        # (load eid, value) or None
        self.guard = guard
        if kind == INIT:
            self.tags = frozenset(["_", "M", "W", "IW"])
        elif kind == STORE:
            self.tags = frozenset(["_", "M", "W"])
        elif kind == LOAD:
            self.tags = frozenset(["_", "M", "R"])
        else:
            self.tags = frozenset(["_", "F", fence])

    def is_memory(self):
        return "M" in self.tags

    def is_write(self):
        return "W" in self.tags

    def is_read(self):
        return "R" in self.tags

    def __eq__(self, other):
        return isinstance(other, Event) and self.eid == other.eid

    def __hash__(self):
        return self.eid

    def __lt__(self, other):
        return self.eid < other.eid

    def __repr__(self):
        if self.kind == INIT:
            s = f"init {self.address}={self.value}"
        elif self.kind == STORE:
            s = f"W {self.address} {self.value}"
        elif self.kind == LOAD:
            s = f"R {self.address} {self.register}"
        else:
            s = f"F {self.fence}"
        return f"e{self.eid}:{s}"

def event_filter(spec):
    """
    Turns a filter specification into a predicate over events. A filter is
    either a callable or a tag name ("W", "R", "M", "F", "IW", "_" or a fence
    name); "A|B" and "A&B" combine tags.
    """
    if callable(spec):
        return spec
    if not isinstance(spec, str) or not spec:
        raise SpecificationError(f"invalid event filter {spec!r}")
    if "|" in spec:
        parts = [event_filter(p.strip()) for p in spec.split("|")]
        return lambda e: any(p(e) for p in parts)
    if "&" in spec:
        parts = [event_filter(p.strip()) for p in spec.split("&")]
        return lambda e: all(p(e) for p in parts)
    return lambda e: spec in e.tags

class Program:
    """
    The compiled program: threads of events, one init write per location and
    the condition whose reachability is checked.
    """

    def __init__(self, name="program"):
        self.name = name
        self.events = []
        self.threads = []
        self.init_events = {}
        self.condition = []
        self._by_eid = {}

    def _add(self, thread, kind, **kwargs):
        eid = len(self.events)
        index = len(self.threads[thread]) if thread >= 0 else 0
        e = Event(eid, thread, index, kind, **kwargs)
        self.events.append(e)
        self._by_eid[eid] = e
        if thread >= 0:
            self.threads[thread].append(e)
        return e

    def location(self, address, init=0):
        if address in self.init_events:
            if self.init_events[address].value != init:
                raise SpecificationError(f"location {address} already initialised")
            return self.init_events[address]
        e = self._add(-1, INIT, address=address, value=init)
        self.init_events[address] = e
        return e

    def new_thread(self):
        self.threads.append([])
        return len(self.threads) - 1

    def _check_thread(self, thread):
        if thread < 0 or thread >= len(self.threads):
            raise SpecificationError(f"unknown thread {thread}")

    def _check_guard(self, thread, guard):
        if guard is None:
            return None
        load, value = guard
        if load.kind != LOAD or load.thread != thread or self._by_eid.get(load.eid) is not load:
            raise SpecificationError(f"guard {load} is not an earlier load of thread {thread}")
        return (load.eid, value)

    def store(self, thread, address, value, guard=None):
        self._check_thread(thread)
        if address not in self.init_events:
            self.location(address)
        return self._add(thread, STORE, address=address, value=value,
                guard=self._check_guard(thread, guard))

    def load(self, thread, address, register, guard=None):
        self._check_thread(thread)
        if address not in self.init_events:
            self.location(address)
        return self._add(thread, LOAD, address=address, register=register,
                guard=self._check_guard(thread, guard))

    def fence(self, thread, name="mfence", guard=None):
        self._check_thread(thread)
        return self._add(thread, FENCE, fence=name,
                guard=self._check_guard(thread, guard))

    def event(self, eid):
        return self._by_eid[eid]

    @property
    def locations(self):
        return sorted(self.init_events)

    def memory_events(self):
        return [e for e in self.events if e.is_memory()]

    def writes(self, address=None):
        return [e for e in self.events if e.is_write() and (address is None or e.address == address)]

    def reads(self, address=None):
        return [e for e in self.events if e.is_read() and (address is None or e.address == address)]

    def values(self, address):
        """
        Every value that can be observed at address.
        """
        return sorted({w.value for w in self.writes(address)})

    def last_load(self, thread, register):
        self._check_thread(thread)
        for e in reversed(self.threads[thread]):
            if e.kind == LOAD and e.register == register:
                return e
        raise SpecificationError(f"register {thread}:{register} is never loaded")

    def exists(self, *atoms):
        """
        Adds atoms to the reachability condition. An atom is either
        (thread, register, value) or (None, location, value).
        """
        for thread, target, value in atoms:
            if thread is None:
                if target not in self.init_events:
                    raise SpecificationError(f"unknown location {target} in condition")
            else:
                self.last_load(thread, target)
            self.condition.append((thread, target, value))

    def __repr__(self):
        return f"Program({self.name}, {len(self.threads)} threads, {len(self.events)} events)"


_re_init = re.compile(r"^init\s+(\w+)\s*=\s*(-?\d+)$")
_re_thread = re.compile(r"^thread\s+(\d+)$")
_re_store = re.compile(r"^W\s+(\w+)\s+(-?\d+)$")
_re_load = re.compile(r"^R\s+(\w+)\s+(\w+)$")
_re_fence = re.compile(r"^F\s+(\w+)$")
_re_guard = re.compile(r"^(.*?)\s+if\s+(\w+)\s*=\s*(-?\d+)$")
_re_reg_atom = re.compile(r"^(\d+):(\w+)\s*=\s*(-?\d+)$")
_re_loc_atom = re.compile(r"^(\w+)\s*=\s*(-?\d+)$")

def parse_litmus(text, name="litmus"):
    """
    Reads the line-based litmus format:

        init x=0
        thread 0
        W x 1
        R y r1
        F mfence
        W z 1 if r1=1
        exists 0:r1=0 /\\ x=1

    Lines starting with '#' are comments.
    """
    P = Program(name)
    thread = None
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if len(line) == 0 or line[0] == "#":
            continue
        m = _re_init.match(line)
        if m:
            if m.group(1) in P.init_events:
                raise SpecificationError(f"line {lineno}: init of {m.group(1)} after its first use")
            P.location(m.group(1), int(m.group(2)))
            continue
        m = _re_thread.match(line)
        if m:
            if int(m.group(1)) != len(P.threads):
                raise SpecificationError(f"line {lineno}: threads must be numbered 0, 1, ...")
            thread = P.new_thread()
            continue
        if line.startswith("exists"):
            atoms = []
            for atom in line[len("exists"):].split("/\\"):
                atom = atom.strip()
                m = _re_reg_atom.match(atom)
                if m:
                    atoms.append((int(m.group(1)), m.group(2), int(m.group(3))))
                    continue
                m = _re_loc_atom.match(atom)
                if m:
                    atoms.append((None, m.group(1), int(m.group(2))))
                    continue
                raise SpecificationError(f"line {lineno}: cannot read condition atom '{atom}'")
            P.exists(*atoms)
            continue
        if thread is None:
            raise SpecificationError(f"line {lineno}: instruction outside of a thread")
        guard = None
        m = _re_guard.match(line)
        if m:
            line = m.group(1)
            guard = (P.last_load(thread, m.group(2)), int(m.group(3)))
        m = _re_store.match(line)
        if m:
            P.store(thread, m.group(1), int(m.group(2)), guard=guard)
            continue
        m = _re_load.match(line)
        if m:
            P.load(thread, m.group(1), m.group(2), guard=guard)
            continue
        m = _re_fence.match(line)
        if m:
            P.fence(thread, m.group(1), guard=guard)
            continue
        raise SpecificationError(f"line {lineno}: cannot read '{line}'")
    return P

def read_litmus(filename):
    path = Path(filename)
    return parse_litmus(path.read_text(), name=path.stem)
