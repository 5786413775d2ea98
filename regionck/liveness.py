# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Liveness-based loan regions.

Given a function CFG this pass answers, for every loan (borrow-creation
site), the minimal region over which the loan must stay valid:

1. Program points are linearised (`PointMap`): one point per statement plus
   one for each block terminator.
2. Backward fixed-point liveness over bindings. A binding is live at a point
   when some path from there reads it before overwriting it. Bindings whose
   type has an observable finalizer are implicitly read at every exit of
   their scope (drop glue counts: a constructor is finalizer-bearing when it
   declares a finalizer or any of its field/argument types is).
3. Forward fixed-point "carry" analysis: which loans flow into which
   binding (borrows, copies, reborrows through `*r`, constructor fields,
   call results tied to arguments by shared generics, stores through
   exclusive references).
4. A loan's region is its creation point joined with, for every binding
   that carries it, the binding's live region split by the points where it
   does not carry the loan. Reassignment therefore leaves a gap instead of
   stretching the old loan to scope end, and loops are covered by the fixed
   points rather than by special cases.

Liveness never fails on well-formed IR; malformed IR (dangling block ids,
unknown bindings or callees) raises `MalformedIRError`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterator, List, Mapping, Optional, Sequence, Set, Tuple

from regionck.borrow_checker import DerefProj, Place
from regionck.core.span import ProgramPoint, Span
from regionck.core.type_subst import elide_signature
from regionck.core.types_core import (
	STATIC,
	AppliedType,
	BorrowKind,
	CellType,
	Lifetime,
	RefType,
	Type,
	TypeArg,
	TypeConstructor,
	iter_lifetimes,
	iter_type_params,
)
from regionck.errors import MalformedIRError
from regionck.ir import (
	AssignStmt,
	BasicBlock,
	BorrowOperand,
	BorrowStmt,
	CallStmt,
	ConstructStmt,
	CopyOperand,
	FinalizeStmt,
	FnDecl,
	Operand,
	RawDerefStmt,
	ReinterpretStmt,
	Statement,
	StaticOperand,
	Terminator,
	UseStmt,
	WriteStmt,
	stmt_operands,
	stmt_target,
)
from regionck.regions import Region, RegionArena

Carries = Dict[str, FrozenSet[int]]

_EMPTY: FrozenSet[int] = frozenset()


class PointMap:
	"""Linear numbering of every statement and terminator of a CFG."""

	def __init__(self, blocks: Sequence[BasicBlock]) -> None:
		self._blocks: Dict[int, BasicBlock] = {}
		self._first: Dict[int, int] = {}
		self._points: List[ProgramPoint] = []
		for blk in blocks:
			if blk.id in self._blocks:
				raise MalformedIRError(f"duplicate block id bb{blk.id}")
			self._blocks[blk.id] = blk
			self._first[blk.id] = len(self._points)
			for idx in range(len(blk.statements) + 1):
				self._points.append(ProgramPoint(blk.id, idx))
		for blk in blocks:
			self._check_terminator(blk.terminator)
		self._preds: List[List[int]] = [[] for _ in self._points]
		for p in range(len(self._points)):
			for succ in self.successors(p):
				self._preds[succ].append(p)

	def _check_terminator(self, term: Terminator) -> None:
		if term.kind == "return":
			if term.targets:
				raise MalformedIRError("return terminator cannot have successors", span=term.span)
		elif term.kind == "jump":
			if len(term.targets) != 1:
				raise MalformedIRError("jump terminator needs exactly one target", span=term.span)
		elif term.kind == "branch":
			if not term.targets:
				raise MalformedIRError("branch terminator needs at least one target", span=term.span)
		else:
			raise MalformedIRError(f"unknown terminator kind '{term.kind}'", span=term.span)
		for target in term.targets:
			if target not in self._blocks:
				raise MalformedIRError(f"dangling block reference bb{target}", span=term.span)

	def __len__(self) -> int:
		return len(self._points)

	def __iter__(self) -> Iterator[int]:
		return iter(range(len(self._points)))

	@property
	def blocks(self) -> List[BasicBlock]:
		return list(self._blocks.values())

	def block(self, bid: int) -> BasicBlock:
		try:
			return self._blocks[bid]
		except KeyError:
			raise MalformedIRError(f"dangling block reference bb{bid}") from None

	def point(self, bid: int, index: int = 0) -> int:
		return self._first[bid] + index

	def terminator_point(self, bid: int) -> int:
		return self._first[bid] + len(self._blocks[bid].statements)

	def block_points(self, bid: int) -> range:
		return range(self._first[bid], self.terminator_point(bid) + 1)

	def at(self, p: int) -> ProgramPoint:
		return self._points[p]

	def node(self, p: int) -> Statement | Terminator:
		"""The statement or terminator sitting at point `p`."""
		pp = self._points[p]
		blk = self._blocks[pp.block]
		if pp.index == len(blk.statements):
			return blk.terminator
		return blk.statements[pp.index]

	def span(self, p: int) -> Span:
		return getattr(self.node(p), "span", None) or Span()

	def successors(self, p: int) -> List[int]:
		pp = self._points[p]
		blk = self._blocks[pp.block]
		if pp.index < len(blk.statements):
			return [p + 1]
		return [self._first[t] for t in blk.terminator.targets]

	def predecessors(self, p: int) -> List[int]:
		return self._preds[p]


class ScopeTree:
	"""
	Lexical scopes of one function, resolved to the blocks they cover.

	Scope 0 is the body and covers every block; any other scope covers its
	own blocks plus those of its descendants.
	"""

	def __init__(self, fn: FnDecl, points: PointMap) -> None:
		self.parent: Dict[int, Optional[int]] = {0: None}
		own: Dict[int, Set[int]] = {0: set()}
		for sc in fn.scopes:
			if sc.id == 0:
				own[0].update(sc.blocks)
				continue
			if sc.id in self.parent:
				raise MalformedIRError(f"duplicate scope id {sc.id}", span=fn.span)
			self.parent[sc.id] = 0 if sc.parent is None else sc.parent
			own[sc.id] = set(sc.blocks)
		for sid, parent in self.parent.items():
			if parent is not None and parent not in self.parent:
				raise MalformedIRError(f"scope {sid} has unknown parent scope {parent}", span=fn.span)
			for bid in own[sid]:
				points.block(bid)
		self.depth: Dict[int, int] = {sid: self._depth(sid, fn.span) for sid in self.parent}
		self.covered: Dict[int, FrozenSet[int]] = {}
		all_blocks = frozenset(blk.id for blk in fn.blocks)
		for sid in sorted(self.parent, key=lambda s: -self.depth[s]):
			if sid == 0:
				self.covered[sid] = all_blocks
				continue
			blocks = set(own[sid])
			for child, parent in self.parent.items():
				if parent == sid:
					blocks |= self.covered[child]
			self.covered[sid] = frozenset(blocks)

	def _depth(self, sid: int, span: Span) -> int:
		depth = 0
		cur = self.parent[sid]
		while cur is not None:
			depth += 1
			if depth > len(self.parent):
				raise MalformedIRError(f"scope {sid} is part of a parent cycle", span=span)
			cur = self.parent[cur]
		return depth

	def __contains__(self, sid: object) -> bool:
		return sid in self.parent

	def top_down(self) -> List[int]:
		"""Scope ids ordered so every parent precedes its children."""
		return sorted(self.parent, key=lambda s: (self.depth[s], s))

	def exit_blocks(self, sid: int, points: PointMap) -> List[BasicBlock]:
		"""Blocks of `sid` whose terminator leaves the scope (return or edge out)."""
		covered = self.covered[sid]
		out: List[BasicBlock] = []
		for bid in sorted(covered):
			term = points.block(bid).terminator
			if term.kind == "return" or any(t not in covered for t in term.targets):
				out.append(points.block(bid))
		return out


@dataclass(frozen=True)
class Loan:
	"""A borrow-creation site: `(place, kind)` created at `point`."""

	id: int
	place: Place
	kind: BorrowKind
	point: int
	at: ProgramPoint
	span: Span = field(default_factory=Span, compare=False)


def needs_finalizer(ty: Optional[TypeArg], ctors: Mapping[str, TypeConstructor], _seen: Optional[Set[str]] = None) -> bool:
	"""
	Does dropping a value of `ty` run user code?

	References and raw pointers own nothing. Applied types need finalization
	if their constructor declares a finalizer, or if any field or type
	argument does (drop glue).
	"""
	if ty is None or isinstance(ty, Lifetime):
		return False
	if isinstance(ty, CellType):
		return needs_finalizer(ty.inner, ctors, _seen)
	if not isinstance(ty, AppliedType):
		return False
	seen = set() if _seen is None else _seen
	if any(needs_finalizer(arg, ctors, seen) for arg in ty.args):
		return True
	decl = ctors.get(ty.ctor)
	if decl is None:
		return False
	if decl.has_finalizer:
		return True
	if ty.ctor in seen:
		return False
	seen.add(ty.ctor)
	return any(needs_finalizer(fld.ty, ctors, seen) for fld in decl.fields)


def _generic_names(ty: Type) -> Set[str]:
	names = {lt.name for lt in iter_lifetimes(ty) if not lt.is_resolved and lt.name != STATIC}
	names.update(iter_type_params(ty))
	return names


@dataclass
class LivenessResult:
	"""Everything the checker needs to know about bindings and loans."""

	points: PointMap
	scopes: ScopeTree
	loans: List[Loan]
	created: Dict[int, List[int]]
	live_in: List[FrozenSet[str]]
	carries_in: List[Carries]
	live_loans: List[FrozenSet[int]]
	regions: Dict[int, Region]
	finalizer_locals: FrozenSet[str] = frozenset()

	def loans_created_at(self, p: int) -> List[Loan]:
		return [self.loans[lid] for lid in self.created.get(p, ())]

	def loans_live_at(self, p: int) -> List[Loan]:
		"""Loans created earlier that are still live on entry to `p`."""
		return [self.loans[lid] for lid in sorted(self.live_loans[p])]

	def is_live(self, name: str, p: int) -> bool:
		return name in self.live_in[p]

	def carried(self, name: str, p: int) -> FrozenSet[int]:
		"""Loans held by binding `name` on entry to `p`."""
		return self.carries_in[p].get(name, _EMPTY)

	def region_of(self, loan: Loan) -> Region:
		return self.regions[loan.id]


class LivenessAnalyzer:
	"""
	Loan regions for one function.

	`signatures` is the program's function table; calls consult it to know
	which arguments the result can borrow from.
	"""

	def __init__(
		self,
		fn: FnDecl,
		ctors: Mapping[str, TypeConstructor],
		signatures: Mapping[str, FnDecl],
		arena: RegionArena,
		*,
		points: Optional[PointMap] = None,
		scopes: Optional[ScopeTree] = None,
	) -> None:
		self.fn = fn
		self.ctors = ctors
		self.signatures = signatures
		self.arena = arena
		self.points = points if points is not None else PointMap(fn.blocks)
		self.scopes = scopes if scopes is not None else ScopeTree(fn, self.points)
		self._bindings: Set[str] = {p.name for p in fn.params} | {l.name for l in fn.locals}
		self._loans: List[Loan] = []
		self._created: Dict[int, List[int]] = {}

	# Name helpers -----------------------------------------------------------------

	def _binding(self, name: str, p: int) -> str:
		if name not in self._bindings:
			raise MalformedIRError(f"reference to unknown binding '{name}'", span=self.points.span(p))
		return name

	def _callee(self, name: str, p: int) -> FnDecl:
		sig = self.signatures.get(name)
		if sig is None:
			raise MalformedIRError(f"call to unknown function '{name}'", span=self.points.span(p))
		return sig

	# Uses and defs -----------------------------------------------------------------

	def _uses_defs(self, p: int) -> Tuple[Set[str], Set[str]]:
		node = self.points.node(p)
		uses: Set[str] = set()
		defs: Set[str] = set()
		for op in stmt_operands(node):
			if isinstance(op, (CopyOperand, BorrowOperand)):
				uses.add(self._binding(op.place.base, p))
		target = stmt_target(node)
		if target is not None:
			self._binding(target.base, p)
			if target.is_local:
				defs.add(target.base)
			elif target.has_deref:
				uses.add(target.base)
		if isinstance(node, UseStmt):
			uses.update(self._binding(pl.base, p) for pl in node.places)
		elif isinstance(node, WriteStmt):
			self._binding(node.place.base, p)
			if node.place.is_local:
				defs.add(node.place.base)
			elif node.place.has_deref:
				uses.add(node.place.base)
		elif isinstance(node, FinalizeStmt):
			uses.add(self._binding(node.name, p))
			defs.add(node.name)
		elif isinstance(node, RawDerefStmt):
			uses.add(self._binding(node.pointer.base, p))
		return uses, defs

	def _value_needs_finalizer(self, stmt: Statement, bearing: Set[str]) -> bool:
		"""Whether `stmt` stores a finalizer-bearing value into its target."""
		if isinstance(stmt, ConstructStmt):
			if needs_finalizer(AppliedType(stmt.ctor), self.ctors):
				return True
			return any(isinstance(op, CopyOperand) and op.place.base in bearing for _, op in stmt.fields)
		if isinstance(stmt, AssignStmt):
			if isinstance(stmt.value, CopyOperand):
				return stmt.value.place.base in bearing
			if isinstance(stmt.value, StaticOperand):
				return needs_finalizer(stmt.value.ty, self.ctors)
			return False
		if isinstance(stmt, ReinterpretStmt):
			return needs_finalizer(stmt.ty, self.ctors)
		if isinstance(stmt, CallStmt):
			sig = self.signatures.get(stmt.callee)
			if sig is None:
				return False
			if needs_finalizer(sig.ret, self.ctors):
				return True
			# A generic result may be instantiated with a finalizer-bearing argument.
			if not set(iter_type_params(sig.ret)) & set(sig.type_params):
				return False
			return any(isinstance(op, CopyOperand) and op.place.base in bearing for op in stmt.args)
		return False

	def _finalizer_locals(self) -> FrozenSet[str]:
		"""
		Locals that may hold a finalizer-bearing value: declared with such a
		type, or assigned one (constructed, returned by a call, copied from
		another such binding, reinterpreted as one).
		"""
		bearing = {l.name for l in self.fn.locals if needs_finalizer(l.ty, self.ctors)}
		bearing.update(prm.name for prm in self.fn.params if needs_finalizer(prm.ty, self.ctors))
		changed = True
		while changed:
			changed = False
			for blk in self.fn.blocks:
				for stmt in blk.statements:
					target = stmt_target(stmt)
					if target is None or not target.is_local or target.base in bearing:
						continue
					if self._value_needs_finalizer(stmt, bearing):
						bearing.add(target.base)
						changed = True
		return frozenset(bearing & {l.name for l in self.fn.locals})

	def _compute_live(self, finalizer_locals: FrozenSet[str]) -> List[FrozenSet[str]]:
		n = len(self.points)
		uses: List[Set[str]] = []
		defs: List[Set[str]] = []
		for p in self.points:
			u, d = self._uses_defs(p)
			uses.append(u)
			defs.append(d)
		for local in self.fn.locals:
			if local.name not in finalizer_locals:
				continue
			if local.scope not in self.scopes:
				raise MalformedIRError(f"local '{local.name}' declared in unknown scope {local.scope}", span=local.span)
			for blk in self.scopes.exit_blocks(local.scope, self.points):
				uses[self.points.terminator_point(blk.id)].add(local.name)

		live_in: List[FrozenSet[str]] = [frozenset() for _ in range(n)]
		changed = True
		while changed:
			changed = False
			for p in reversed(range(n)):
				out: Set[str] = set()
				for succ in self.points.successors(p):
					out |= live_in[succ]
				new_in = frozenset(uses[p] | (out - defs[p]))
				if new_in != live_in[p]:
					live_in[p] = new_in
					changed = True
		return live_in

	# Loans and carries -------------------------------------------------------------

	def _create_loans(self) -> None:
		for p in self.points:
			for op in stmt_operands(self.points.node(p)):
				if isinstance(op, BorrowOperand):
					loan = Loan(
						id=len(self._loans),
						place=op.place,
						kind=op.kind,
						point=p,
						at=self.points.at(p),
						span=self.points.span(p),
					)
					self._loans.append(loan)
					self._created.setdefault(p, []).append(loan.id)

	def _operand_carries(self, op: Operand, state: Carries, created: Iterator[int]) -> FrozenSet[int]:
		if isinstance(op, BorrowOperand):
			return frozenset({next(created)}) | state.get(op.place.base, _EMPTY)
		if isinstance(op, CopyOperand):
			return state.get(op.place.base, _EMPTY)
		return _EMPTY

	def _store(self, state: Carries, target: Place, value: FrozenSet[int]) -> None:
		"""Record that `value`'s loans now live in `target`."""
		if target.is_local:
			if value:
				state[target.base] = value
			else:
				state.pop(target.base, None)
			return
		if target.has_deref:
			# Stores through a reference land in whatever it exclusively borrows.
			for lid in state.get(target.base, _EMPTY):
				loan = self._loans[lid]
				if loan.kind is BorrowKind.EXCLUSIVE and value:
					state[loan.place.base] = state.get(loan.place.base, _EMPTY) | value
			return
		if value:
			state[target.base] = state.get(target.base, _EMPTY) | value

	def _transfer_call(self, p: int, stmt: CallStmt, state: Carries, vals: List[FrozenSet[int]]) -> None:
		sig = self._callee(stmt.callee, p)
		if len(sig.params) != len(stmt.args):
			raise MalformedIRError(
				f"call to '{stmt.callee}' passes {len(stmt.args)} arguments, expected {len(sig.params)}",
				span=stmt.span,
			)
		elided = elide_signature(sig.lifetime_params, tuple(prm.ty for prm in sig.params), sig.ret)
		names = [_generic_names(pty) for pty in elided.param_types]
		for idx, (op, pty) in enumerate(zip(stmt.args, elided.param_types)):
			if not isinstance(pty, RefType) or not pty.exclusive:
				continue
			if not isinstance(op, (BorrowOperand, CopyOperand)):
				continue
			inner = _generic_names(pty.inner)
			flows = _EMPTY
			for jdx, other in enumerate(vals):
				if jdx != idx and inner & names[jdx]:
					flows |= other
			if not flows:
				continue
			# The callee may store the other arguments into the referent.
			referent = op.place if isinstance(op, BorrowOperand) else op.place.with_projection(DerefProj())
			if referent.is_local:
				state[referent.base] = state.get(referent.base, _EMPTY) | flows
			else:
				self._store(state, referent, flows)
		if stmt.dest is not None:
			ret_names = _generic_names(elided.ret)
			value = _EMPTY
			for jdx, other in enumerate(vals):
				if ret_names & names[jdx]:
					value |= other
			self._store(state, stmt.dest, value)

	def _transfer(self, p: int, state_in: Carries) -> Carries:
		state = dict(state_in)
		node = self.points.node(p)
		created = iter(self._created.get(p, ()))
		vals = [self._operand_carries(op, state, created) for op in stmt_operands(node)]
		if isinstance(node, (BorrowStmt, AssignStmt)):
			self._store(state, node.target, vals[0])
		elif isinstance(node, (RawDerefStmt, ReinterpretStmt)):
			# No provenance: the result is tracked by the unbounded detector instead.
			self._store(state, node.target, _EMPTY)
		elif isinstance(node, ConstructStmt):
			value = _EMPTY
			for v in vals:
				value |= v
			self._store(state, node.target, value)
		elif isinstance(node, CallStmt):
			self._transfer_call(p, node, state, vals)
		elif isinstance(node, WriteStmt):
			if node.place.is_local:
				state.pop(node.place.base, None)
		elif isinstance(node, FinalizeStmt):
			state.pop(node.name, None)
		return state

	def _compute_carries(self) -> List[Carries]:
		n = len(self.points)
		carries_in: List[Carries] = [{} for _ in range(n)]
		carries_out: List[Optional[Carries]] = [None] * n
		worklist = [self.points.point(self.fn.entry)]
		while worklist:
			p = worklist.pop()
			merged: Carries = {}
			for pred in self.points.predecessors(p):
				out = carries_out[pred]
				if out is None:
					continue
				for name, lids in out.items():
					merged[name] = merged.get(name, _EMPTY) | lids
			carries_in[p] = merged
			new_out = self._transfer(p, merged)
			if new_out != carries_out[p]:
				carries_out[p] = new_out
				worklist.extend(self.points.successors(p))
		return carries_in

	# Regions -------------------------------------------------------------------------

	def _loan_regions(self, live_in: List[FrozenSet[str]], carries_in: List[Carries]) -> Dict[int, Region]:
		carriers: Dict[int, Set[str]] = {}
		for p in self.points:
			for name, lids in carries_in[p].items():
				for lid in lids:
					carriers.setdefault(lid, set()).add(name)
		regions: Dict[int, Region] = {}
		for loan in self._loans:
			region = self.arena.from_points([loan.point], self.arena.body)
			for name in sorted(carriers.get(loan.id, ())):
				live_pts = [p for p in self.points if name in live_in[p]]
				if not live_pts:
					continue
				gaps = [p for p in live_pts if loan.id not in carries_in[p].get(name, _EMPTY)]
				carried = self.arena.split(self.arena.from_points(live_pts, self.arena.body), gaps)
				region = self.arena.join(region, carried)
			regions[loan.id] = region
		return regions

	def analyze(self) -> LivenessResult:
		finalizer_locals = self._finalizer_locals()
		live_in = self._compute_live(finalizer_locals)
		self._create_loans()
		carries_in = self._compute_carries()
		live_loans: List[FrozenSet[int]] = []
		for p in self.points:
			held: Set[int] = set()
			for name in live_in[p]:
				held |= carries_in[p].get(name, _EMPTY)
			live_loans.append(frozenset(held))
		return LivenessResult(
			points=self.points,
			scopes=self.scopes,
			loans=list(self._loans),
			created=dict(self._created),
			live_in=live_in,
			carries_in=carries_in,
			live_loans=live_loans,
			regions=self._loan_regions(live_in, carries_in),
			finalizer_locals=finalizer_locals,
		)


__all__ = ["PointMap", "ScopeTree", "Loan", "LivenessResult", "LivenessAnalyzer", "needs_finalizer"]
