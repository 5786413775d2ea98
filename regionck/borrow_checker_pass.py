#!/usr/bin/env python3
# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Borrow-check pass: exclusivity, boundary subtyping and escape checks.

Per function:
- Lifetime parameters become fresh PARAM regions (with their declared
  outlives bounds); every lexical scope gets a region covering its blocks.
- The liveness pass assigns a region to every loan.
- A forward fixed point computes the value type of every binding whose type
  is inferred (merging branches with `lub`). A borrow's type lifetime is the
  largest region the borrowed place is valid for: the storage scope of a
  local, or the lifetime of the reference it was reborrowed through.
- A single reporting walk then visits the blocks in order and checks:
  * every access against the loans live at that point (reads are transient
    shared accesses, writes and finalization transient exclusive ones,
    borrows are retained) -> ExclusivityViolation;
  * call arguments, stores into declared bindings and fields, constructor
    fields and return values against their expected types -> SubtypeMismatch;
  * locals whose scope ends while a loan on them is still live ->
    SubtypeMismatch (does not live long enough);
  * unbounded values returned, and output lifetimes not tied to any input
    -> UnboundedEscape.

Malformed IR raises `MalformedIRError`; analysis of that function stops and
the reports gathered so far are kept.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, List, Mapping, Optional, Set, Tuple

from regionck.borrow_checker import (
	DerefProj,
	FieldProj,
	IndexProj,
	LocationState,
	Place,
	places_overlap,
)
from regionck.conflicts import ConflictKind, ConflictReport, FunctionResult
from regionck.core.span import Span
from regionck.core.type_subst import ElidedSignature, Subst, apply_subst, elide_signature, resolve_lifetimes
from regionck.core.types_core import (
	STATIC,
	AppliedType,
	BorrowKind,
	Lifetime,
	RawPtrType,
	RefType,
	Type,
	TypeArg,
	format_type,
	is_inferred,
	iter_lifetimes,
	iter_type_params,
)
from regionck.errors import MalformedIRError
from regionck.ir import (
	AssignStmt,
	BorrowOperand,
	BorrowStmt,
	CallStmt,
	ConstructStmt,
	CopyOperand,
	FinalizeStmt,
	FnDecl,
	Operand,
	Program,
	RawDerefStmt,
	ReinterpretStmt,
	StaticOperand,
	Terminator,
	UseStmt,
	WriteStmt,
	stmt_operands,
	stmt_target,
)
from regionck.liveness import LivenessAnalyzer, LivenessResult, Loan, PointMap, ScopeTree
from regionck.options import AnalysisOptions
from regionck.regions import Region, RegionArena
from regionck.subtyping import SubtypeOracle
from regionck.unbounded import UnboundedDetector, raw_deref_type, reinterpret_type
from regionck.variance import VarianceTable

# Binding name -> value type; absent means "not assigned yet", None means
# "unknown" (absorbing on merge).
Env = Dict[str, Optional[TypeArg]]


class Access(Enum):
	"""How a statement touches a place."""

	READ = auto()
	WRITE = auto()
	SHARED_BORROW = auto()
	EXCLUSIVE_BORROW = auto()

	@property
	def kind(self) -> BorrowKind:
		if self in (Access.READ, Access.SHARED_BORROW):
			return BorrowKind.SHARED
		return BorrowKind.EXCLUSIVE

	@property
	def transient(self) -> bool:
		return self in (Access.READ, Access.WRITE)


_ACCESS_MESSAGES = {
	Access.READ: "cannot read '{place}' while it is exclusively borrowed",
	Access.WRITE: "cannot write to '{place}' while it is borrowed",
	Access.SHARED_BORROW: "cannot borrow '{place}' as shared while it is exclusively borrowed",
	Access.EXCLUSIVE_BORROW: "cannot borrow '{place}' as exclusive while it is borrowed",
}


@dataclass
class _Binding:
	"""A parameter or local as seen by the checker."""

	name: str
	declared: Optional[Type]  # None: type inferred from assigned values
	storage: Lifetime
	scope: int
	span: Span = field(default_factory=Span)


@dataclass
class BorrowChecker:
	"""
	Per-function borrow checker.

	Inputs:
	- program: callee signatures and type constructors.
	- variances: the frozen process-wide variance table.
	- options: analysis knobs (severity of unbounded escapes).

	`check_function` resets all per-run state; one instance can check many
	functions one after another.
	"""

	program: Program
	variances: VarianceTable
	options: AnalysisOptions = field(default_factory=AnalysisOptions)
	reports: List[ConflictReport] = field(default_factory=list)
	_fn: Optional[FnDecl] = field(init=False, default=None, repr=False)
	_arena: RegionArena = field(init=False, default_factory=RegionArena, repr=False)
	_oracle: Optional[SubtypeOracle] = field(init=False, default=None, repr=False)
	_liveness: Optional[LivenessResult] = field(init=False, default=None, repr=False)
	_points: Optional[PointMap] = field(init=False, default=None, repr=False)
	_scopes: Optional[ScopeTree] = field(init=False, default=None, repr=False)

	def check_function(self, fn: FnDecl) -> FunctionResult:
		"""Analyse one function body in isolation."""
		self.reports = []
		try:
			self._seed(fn)
			in_envs = self._flow_types()
			self._report(in_envs)
		except MalformedIRError as exc:
			return FunctionResult(fn.name, list(self.reports), aborted=True, error=exc)
		return FunctionResult(fn.name, list(self.reports))

	# Setup -------------------------------------------------------------------------

	def _seed(self, fn: FnDecl) -> None:
		if fn.is_declaration:
			raise MalformedIRError(f"function '{fn.name}' has no body", span=fn.span)
		self._fn = fn
		self._arena = RegionArena()
		self._points = PointMap(fn.blocks)
		self._scopes = ScopeTree(fn, self._points)
		self._static = Lifetime.of_region(self._arena.static.id, STATIC)

		body = self._arena.set_body(range(len(self._points)))
		self._scope_regions: Dict[int, Region] = {}
		for sid in self._scopes.top_down():
			parent_id = self._scopes.parent[sid]
			if parent_id is None:
				self._scope_regions[sid] = body
				continue
			pts = [p for bid in self._scopes.covered[sid] for p in self._points.block_points(bid)]
			self._scope_regions[sid] = self._arena.new_region(self._scope_regions[parent_id], pts)

		self._sig: ElidedSignature = elide_signature(fn.lifetime_params, tuple(p.ty for p in fn.params), fn.ret)
		self._lifetimes: Dict[str, Lifetime] = {STATIC: self._static}
		for name in self._sig.lifetime_params:
			if name in self._lifetimes or not name.startswith("'"):
				raise MalformedIRError(f"invalid or duplicate lifetime parameter {name}", span=fn.span)
			self._lifetimes[name] = Lifetime.of_region(self._arena.new_param(name).id, name)
		for longer, shorter in fn.outlives:
			if longer not in self._lifetimes or shorter not in self._lifetimes:
				raise MalformedIRError(f"outlives bound {longer}: {shorter} uses an undeclared lifetime", span=fn.span)
			self._arena.add_outlives(self._region(self._lifetimes[longer]), self._region(self._lifetimes[shorter]))

		self._bindings: Dict[str, _Binding] = {}
		body_lt = self._lifetime_of(body)
		for param, ty in zip(fn.params, self._sig.param_types):
			declared = resolve_lifetimes(ty, self._lifetimes, span=param.span)
			self._add_binding(_Binding(param.name, declared, body_lt, 0, param.span))  # type: ignore[arg-type]
		for local in fn.locals:
			if local.scope not in self._scope_regions:
				raise MalformedIRError(f"local '{local.name}' declared in unknown scope {local.scope}", span=local.span)
			declared: Optional[Type] = None
			if local.ty is not None:
				resolved = resolve_lifetimes(local.ty, self._lifetimes, allow_inferred=True, span=local.span)
				if not is_inferred(resolved):
					declared = resolved  # type: ignore[assignment]
			storage = self._lifetime_of(self._scope_regions[local.scope])
			self._add_binding(_Binding(local.name, declared, storage, local.scope, local.span))
		self._ret = resolve_lifetimes(self._sig.ret, self._lifetimes, span=fn.span)

		self._oracle = SubtypeOracle(self._arena, self.variances)
		self._detector = UnboundedDetector(self.options.unbounded_severity)
		self._liveness = LivenessAnalyzer(
			fn,
			self.variances.constructors,
			self.program.functions,
			self._arena,
			points=self._points,
			scopes=self._scopes,
		).analyze()

	def _add_binding(self, binding: _Binding) -> None:
		if binding.name in self._bindings:
			raise MalformedIRError(f"duplicate binding '{binding.name}'", span=binding.span)
		self._bindings[binding.name] = binding

	def _region(self, lt: Lifetime) -> Region:
		if lt.region is None:
			raise MalformedIRError(f"lifetime {lt} is unresolved")
		return self._arena.get(lt.region)

	def _lifetime_of(self, region: Region) -> Lifetime:
		return Lifetime.of_region(region.id, str(region))

	def _binding(self, name: str, span: Span | None = None) -> _Binding:
		binding = self._bindings.get(name)
		if binding is None:
			raise MalformedIRError(f"reference to unknown binding '{name}'", span=span)
		return binding

	# Types of places and operands ------------------------------------------------

	def _binding_type(self, env: Env, name: str, span: Span | None = None) -> Optional[TypeArg]:
		binding = self._binding(name, span)
		if binding.declared is not None:
			return binding.declared
		return env.get(name)

	def _project(self, ty: Optional[TypeArg], proj: object, span: Span | None) -> Optional[TypeArg]:
		if ty is None:
			return None
		if isinstance(proj, DerefProj):
			if isinstance(ty, (RefType, RawPtrType)):
				return ty.inner
			raise MalformedIRError(f"cannot dereference a value of type {format_type(ty)}", span=span)
		if isinstance(proj, FieldProj):
			if not isinstance(ty, AppliedType):
				raise MalformedIRError(f"type {format_type(ty)} has no field '{proj.name}'", span=span)
			decl = self.variances.constructor(ty.ctor)
			fld = decl.get_field(proj.name)
			if fld is None:
				raise MalformedIRError(f"{ty.ctor} has no field '{proj.name}'", span=span)
			if len(ty.args) != len(decl.params):
				raise MalformedIRError(f"{ty.ctor} expects {len(decl.params)} arguments, got {len(ty.args)}", span=span)
			args: Dict[str, TypeArg] = {p.name: a for p, a in zip(decl.params, ty.args)}
			args[STATIC] = self._static
			return apply_subst(fld.ty, Subst(args))
		if isinstance(proj, IndexProj):
			elems = [a for a in getattr(ty, "args", ()) if not isinstance(a, Lifetime)]
			if not elems:
				raise MalformedIRError(f"type {format_type(ty)} cannot be indexed", span=span)
			return elems[-1]
		raise MalformedIRError(f"unknown projection {proj!r}", span=span)

	def _place_type(self, env: Env, place: Place, span: Span | None = None) -> Optional[TypeArg]:
		ty = self._binding_type(env, place.base, span)
		for proj in place.projections:
			ty = self._project(ty, proj, span)
		return ty

	def _borrow_lifetime(self, env: Env, place: Place, span: Span | None = None) -> Lifetime:
		"""
		Largest lifetime a borrow of `place` can have.

		Without a dereference it is the storage scope of the base binding.
		A shared dereference restarts from that reference's lifetime; an
		exclusive one can only narrow what the path already allows. A raw
		pointer dereference has no bound at all.
		"""
		assert self._oracle is not None
		lt: Optional[Lifetime] = None
		ty = self._binding_type(env, place.base, span)
		for proj in place.projections:
			if ty is None:
				break
			if isinstance(proj, DerefProj):
				if isinstance(ty, RawPtrType):
					lt = Lifetime.make_unbounded()
				elif isinstance(ty, RefType):
					if lt is None or not ty.exclusive:
						lt = ty.lifetime
					else:
						lt = self._oracle.lub(lt, ty.lifetime)  # type: ignore[assignment]
			ty = self._project(ty, proj, span)
		if lt is None:
			return self._binding(place.base, span).storage
		return lt

	def _shared_path(self, env: Env, place: Place, span: Span | None = None) -> Optional[Place]:
		"""The prefix of `place` that dereferences a shared pointer, if any."""
		ty = self._binding_type(env, place.base, span)
		prefix = Place(place.base)
		for proj in place.projections:
			if ty is None:
				return None
			if isinstance(proj, DerefProj):
				if (isinstance(ty, RefType) and not ty.exclusive) or (isinstance(ty, RawPtrType) and not ty.exclusive):
					return prefix
			ty = self._project(ty, proj, span)
			prefix = prefix.with_projection(proj)
		return None

	def _static_type(self, ty: Type, span: Span | None) -> TypeArg:
		return resolve_lifetimes(ty, self._lifetimes, span=span)

	def _operand_type(self, env: Env, op: Operand, span: Span | None = None) -> Optional[TypeArg]:
		if isinstance(op, CopyOperand):
			return self._place_type(env, op.place, span)
		if isinstance(op, BorrowOperand):
			inner = self._place_type(env, op.place, span)
			if inner is None:
				return None
			return RefType(self._borrow_lifetime(env, op.place, span), inner, op.kind)  # type: ignore[arg-type]
		if isinstance(op, StaticOperand):
			return self._static_type(op.ty, span)
		raise MalformedIRError(f"unknown operand {op!r}", span=span)

	# Reporting helpers -------------------------------------------------------------

	def _emit(self, report: ConflictReport) -> None:
		self.reports.append(report)

	def _regions_of(self, *types: Optional[TypeArg]) -> Tuple[Region, ...]:
		out: List[Region] = []
		for ty in types:
			if ty is None:
				continue
			for lt in iter_lifetimes(ty):
				if lt.region is not None:
					region = self._arena.get(lt.region)
					if region not in out:
						out.append(region)
		return tuple(out)

	def _require_subtype(self, actual: Optional[TypeArg], expected: Optional[TypeArg], p: int, what: str) -> None:
		"""Boundary check; unknown or still-generic sides are skipped."""
		assert self._oracle is not None and self._points is not None
		if actual is None or expected is None:
			return
		if self._oracle.is_subtype(actual, expected):
			return
		self._emit(
			ConflictReport(
				kind=ConflictKind.SUBTYPE_MISMATCH,
				message=f"{what}: {format_type(actual)} is not a subtype of {format_type(expected)}",
				point=self._points.at(p),
				regions=self._regions_of(actual, expected),
				types=(actual, expected),
				span=self._points.span(p),
			)
		)

	# Transfer ------------------------------------------------------------------------

	def _store(self, env: Env, target: Place, value: Optional[TypeArg], p: int, report: bool, what: str) -> None:
		span = self._points.span(p) if self._points is not None else None
		if target.is_local:
			binding = self._binding(target.base, span)
			if binding.declared is not None:
				# Declared bindings keep their type; this is where values narrow.
				if report:
					self._require_subtype(value, binding.declared, p, f"{what} to '{target.base}'")
				return
			env[target.base] = value
			return
		expected = self._place_type(env, target, span)
		if report:
			self._require_subtype(value, expected, p, f"{what} to '{target}'")

	def _instantiate_call(self, env: Env, stmt: CallStmt, p: int, report: bool) -> Optional[TypeArg]:
		assert self._oracle is not None
		callee = self.program.functions.get(stmt.callee)
		if callee is None:
			raise MalformedIRError(f"call to unknown function '{stmt.callee}'", span=stmt.span)
		if len(callee.params) != len(stmt.args):
			raise MalformedIRError(
				f"call to '{stmt.callee}' passes {len(stmt.args)} arguments, expected {len(callee.params)}",
				span=stmt.span,
			)
		sig = elide_signature(callee.lifetime_params, tuple(prm.ty for prm in callee.params), callee.ret)
		arg_types = [self._operand_type(env, op, stmt.span) for op in stmt.args]
		subst = self._oracle.instantiate(
			sig.lifetime_params,
			callee.type_params,
			list(zip(sig.param_types, arg_types)),
			static=self._static,
		)
		if report:
			for idx, (declared, actual) in enumerate(zip(sig.param_types, arg_types)):
				expected = apply_subst(declared, subst)
				if any(name in callee.type_params for name in iter_type_params(expected)):
					continue
				self._require_subtype(actual, expected, p, f"argument {idx} of call to '{stmt.callee}'")
		ret = apply_subst(sig.ret, subst)
		if any(name in callee.type_params for name in iter_type_params(ret)):
			return None
		return ret

	def _instantiate_ctor(self, env: Env, stmt: ConstructStmt, p: int, report: bool) -> Optional[TypeArg]:
		assert self._oracle is not None
		decl = self.variances.constructor(stmt.ctor)
		given = dict(stmt.fields)
		names = [fld.name for fld in decl.fields]
		if len(given) != len(stmt.fields) or set(given) != set(names):
			raise MalformedIRError(
				f"{stmt.ctor} {{...}} must initialise exactly the fields {', '.join(names) or '(none)'}",
				span=stmt.span,
			)
		values = {name: self._operand_type(env, op, stmt.span) for name, op in stmt.fields}
		subst = self._oracle.instantiate(
			decl.lifetime_params,
			decl.type_params,
			[(fld.ty, values[fld.name]) for fld in decl.fields],
			static=self._static,
			free=self._static,
		)
		if report:
			for fld in decl.fields:
				expected = apply_subst(fld.ty, subst)
				if any(name in decl.type_params for name in iter_type_params(expected)):
					continue
				self._require_subtype(values[fld.name], expected, p, f"field '{fld.name}' of {stmt.ctor}")
		if any(param.name not in subst.args for param in decl.params):
			return None
		return AppliedType(stmt.ctor, tuple(subst.args[param.name] for param in decl.params))

	def _step(self, env: Env, p: int, report: bool) -> None:
		"""Apply the type effect of the node at `p` to `env`."""
		assert self._points is not None
		node = self._points.node(p)
		span = self._points.span(p)
		if isinstance(node, BorrowStmt):
			value = self._operand_type(env, BorrowOperand(node.place, node.kind), span)
			self._store(env, node.target, value, p, report, "assignment")
		elif isinstance(node, AssignStmt):
			self._store(env, node.target, self._operand_type(env, node.value, span), p, report, "assignment")
		elif isinstance(node, CallStmt):
			value = self._instantiate_call(env, node, p, report)
			if node.dest is not None:
				self._store(env, node.dest, value, p, report, f"result of '{node.callee}'")
		elif isinstance(node, ConstructStmt):
			value = self._instantiate_ctor(env, node, p, report)
			self._store(env, node.target, value, p, report, "construction")
		elif isinstance(node, RawDerefStmt):
			pointer = self._place_type(env, node.pointer, span)
			self._store(env, node.target, raw_deref_type(pointer, node.kind, span=span), p, report, "raw dereference")
		elif isinstance(node, ReinterpretStmt):
			self._operand_type(env, node.value, span)
			ty = resolve_lifetimes(node.ty, self._lifetimes, allow_inferred=True, span=span)
			self._store(env, node.target, reinterpret_type(ty), p, report, "reinterpretation")
		elif isinstance(node, (UseStmt, WriteStmt)):
			places = node.places if isinstance(node, UseStmt) else (node.place,)
			for place in places:
				self._place_type(env, place, span)
		elif isinstance(node, FinalizeStmt):
			self._binding(node.name, span)

	def _merge_env(self, a: Env, b: Env) -> Env:
		assert self._oracle is not None
		out: Env = dict(a)
		for name, ty in b.items():
			if name not in out:
				out[name] = ty
				continue
			cur = out[name]
			if cur is None or ty is None:
				out[name] = None
			elif cur != ty:
				out[name] = self._oracle.lub(cur, ty)
		return out

	def _flow_types(self) -> Dict[int, Optional[Env]]:
		"""Forward fixed point of inferred binding types, no reporting."""
		assert self._fn is not None and self._points is not None
		in_envs: Dict[int, Optional[Env]] = {blk.id: None for blk in self._fn.blocks}
		in_envs[self._fn.entry] = {}
		worklist = [self._fn.entry]
		while worklist:
			bid = worklist.pop()
			env = dict(in_envs[bid] or {})
			for p in self._points.block_points(bid):
				self._step(env, p, report=False)
			for succ in self._points.block(bid).terminator.targets:
				prev = in_envs[succ]
				merged = dict(env) if prev is None else self._merge_env(prev, env)
				if merged != prev:
					in_envs[succ] = merged
					worklist.append(succ)
		return in_envs

	# Access checks ------------------------------------------------------------------

	def _access(self, place: Place, access: Access, live: List[Loan], p: int) -> None:
		assert self._points is not None and self._liveness is not None
		overlapping = [loan for loan in live if places_overlap(loan.place, place)]
		if not overlapping:
			return
		state = LocationState.from_loans(place, (loan.kind for loan in overlapping))
		if state.acquire(access.kind):
			if access.transient:
				state.release(access.kind)
			return
		blocking = [
			loan for loan in overlapping
			if access.kind is BorrowKind.EXCLUSIVE or loan.kind is BorrowKind.EXCLUSIVE
		]
		first = blocking[0]
		kind_name = "exclusive" if first.kind is BorrowKind.EXCLUSIVE else "shared"
		self._emit(
			ConflictReport(
				kind=ConflictKind.EXCLUSIVITY_VIOLATION,
				message=_ACCESS_MESSAGES[access].format(place=place),
				point=self._points.at(p),
				regions=tuple(self._liveness.region_of(loan) for loan in blocking),
				span=self._points.span(p),
				notes=[f"conflicting {kind_name} borrow of '{first.place}' created at {first.at}"],
			)
		)

	def _mutation_through_shared(self, env: Env, place: Place, p: int) -> None:
		assert self._points is not None
		prefix = self._shared_path(env, place, self._points.span(p))
		if prefix is None:
			return
		self._emit(
			ConflictReport(
				kind=ConflictKind.EXCLUSIVITY_VIOLATION,
				message=f"cannot mutate '{place}' through shared reference '{prefix}'",
				point=self._points.at(p),
				span=self._points.span(p),
			)
		)

	def _check_accesses(self, env: Env, p: int) -> None:
		assert self._points is not None and self._liveness is not None
		node = self._points.node(p)
		before = self._liveness.loans_live_at(p)
		live = list(before)
		created = iter(self._liveness.loans_created_at(p))
		for op in stmt_operands(node):
			if isinstance(op, CopyOperand):
				self._access(op.place, Access.READ, live, p)
			elif isinstance(op, BorrowOperand):
				loan = next(created)
				if op.kind is BorrowKind.EXCLUSIVE:
					self._access(op.place, Access.EXCLUSIVE_BORROW, live, p)
					self._mutation_through_shared(env, op.place, p)
				else:
					self._access(op.place, Access.SHARED_BORROW, live, p)
				live.append(loan)
		if isinstance(node, UseStmt):
			for place in node.places:
				self._access(place, Access.READ, live, p)
		elif isinstance(node, WriteStmt):
			self._access(node.place, Access.WRITE, before, p)
			self._mutation_through_shared(env, node.place, p)
		elif isinstance(node, FinalizeStmt):
			self._access(Place(node.name), Access.WRITE, before, p)
		elif isinstance(node, RawDerefStmt):
			self._access(node.pointer, Access.READ, live, p)
		target = stmt_target(node)
		if target is not None:
			self._access(target, Access.WRITE, before, p)
			if not target.is_local:
				self._mutation_through_shared(env, target, p)

	# Exits ---------------------------------------------------------------------------

	def _check_scope_exits(self, bid: int) -> None:
		"""Loans on locals must be dead once control leaves the locals' scope."""
		assert self._fn is not None and self._points is not None and self._scopes is not None
		assert self._liveness is not None
		term = self._points.block(bid).terminator
		term_p = self._points.terminator_point(bid)
		reported: Set[Tuple[int, int]] = set()
		for target in term.targets:
			entry = self._points.point(target)
			for sid, covered in self._scopes.covered.items():
				if bid not in covered or target in covered:
					continue
				for local in self._fn.locals:
					if local.scope != sid:
						continue
					for loan in self._liveness.loans_live_at(entry):
						if loan.place.base != local.name or loan.place.has_deref:
							continue
						if (loan.id, sid) in reported:
							continue
						reported.add((loan.id, sid))
						self._emit(
							ConflictReport(
								kind=ConflictKind.SUBTYPE_MISMATCH,
								message=f"'{local.name}' does not live long enough",
								point=self._points.at(term_p),
								regions=(self._scope_regions[sid], self._liveness.region_of(loan)),
								span=term.span,
								notes=[
									f"borrowed at {loan.at}",
									f"storage of '{local.name}' ends when leaving scope {sid}",
								],
							)
						)

	def _check_return(self, env: Env, p: int, term: Terminator) -> bool:
		"""Return-boundary checks; answers whether the value is owned outright."""
		assert self._points is not None and self._liveness is not None
		if term.value is None:
			return True
		value = self._operand_type(env, term.value, term.span)
		escape = self._detector.check_return(value, point=self._points.at(p), span=term.span)
		if escape is not None:
			self._emit(escape)
			return False
		self._require_subtype(value, self._ret, p, "returned value")
		if isinstance(term.value, BorrowOperand):
			return False
		if isinstance(term.value, CopyOperand):
			return not self._liveness.carried(term.value.place.base, p) and not term.value.place.has_deref
		return True

	def _input_lifetimes(self) -> Set[str]:
		names: Set[str] = set()
		for ty in self._sig.param_types:
			for lt in iter_lifetimes(ty):
				if not lt.is_resolved and lt.name != STATIC:
					names.add(lt.name)
		return names

	# Reporting walk -----------------------------------------------------------------

	def _report(self, in_envs: Mapping[int, Optional[Env]]) -> None:
		assert self._fn is not None and self._points is not None
		owned_return = True
		first_return: Optional[int] = None
		for blk in self._fn.blocks:
			env = dict(in_envs.get(blk.id) or {})
			for p in self._points.block_points(blk.id):
				self._check_accesses(env, p)
				if p == self._points.terminator_point(blk.id) and blk.terminator.kind == "return":
					if first_return is None:
						first_return = p
					owned_return = self._check_return(env, p, blk.terminator) and owned_return
				self._step(env, p, report=True)
			self._check_scope_exits(blk.id)
		anchor = first_return if first_return is not None else self._points.point(self._fn.entry)
		report = self._detector.check_signature(
			self._fn.name,
			self._sig.ret,
			self._input_lifetimes(),
			self._fn.outlives,
			owned_return=owned_return,
			point=self._points.at(anchor),
			span=self._fn.span,
		)
		if report is not None:
			self._emit(report)


def check_function(
	program: Program,
	variances: VarianceTable,
	fn: FnDecl,
	options: Optional[AnalysisOptions] = None,
) -> FunctionResult:
	"""Convenience wrapper for one-off checks (tests, tools)."""
	return BorrowChecker(program, variances, options or AnalysisOptions()).check_function(fn)


__all__ = ["Access", "BorrowChecker", "check_function"]
