"""Mapper Service: lifecycle, end-to-end mapping, diagnostics routing, strict mode.

Tests cover:
    - Flat and nested end-to-end mappings, both directions
    - Destination storage never shared with the source
    - Lifecycle: map before build, register after build, re-registration, rebuild
    - Invalid destinations and rejected pairs
    - Strict mode from constructor, Settings and environment
    - Per-mapper and per-call sinks, LoggingSink default
    - Concurrent map() calls on one built mapper
    - Frozen nested records, failing constructors, depth settings
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import pytest

from structmap.config import Settings, get_settings
from structmap.core.diagnostics import CollectingSink
from structmap.core.domain_types import DiagnosticCode, MapperState
from structmap.core.errors import MappingFailedError, RegistrationClosedError
from structmap.services.mapper import Mapper
from tests.sample_types import (
    Catalog, DestinationMapType, Destination, DestStruct, Envelope, FrozenDest, FrozenKey,
    FrozenKeyed, Item, NestedDestination, NestedSource, Node, ScaledInner, ScaledOuter,
    Source, SourceMapType, SrcStruct, User, UserDTO, WireCatalog, WireEnvelope, WireInner,
    WireItem, WireKey, WireKeyed, WireNode, WireOuter,
)


@dataclass
class WireCode:
    CODE: str


@dataclass
class Coded:
    code: str = field(default="", metadata={"wire": "CODE"})


def _src_struct(**overrides) -> SrcStruct:
    values = dict(ID=1, Name="Name", Weight=10.5, Marks=[1, 2, 3])
    values.update(overrides)
    return SrcStruct(**values)


def _empty_dest() -> DestStruct:
    return DestStruct(0, "", 0.0, [])


def _source() -> Source:
    return Source(
        ID=1, FirstName="Ann", Weight=10.5, Marks=[1, 2],
        Address=[
            NestedSource("CA", {1: SourceMapType("a"), 2: None}),
            None,
        ],
    )


def _expected_destination() -> Destination:
    return Destination(
        Id=1, Name="Ann", Weight=10.5, Marks=[1, 2],
        Address=[
            NestedDestination("CA", {1: DestinationMapType("a"), 2: None}),
            None,
        ],
    )


@pytest.fixture
def flat(sink) -> Mapper:
    mapper = Mapper(sink=sink)
    mapper.register(SrcStruct, DestStruct)
    mapper.build()
    return mapper


@pytest.fixture
def nested(sink) -> Mapper:
    mapper = (
        Mapper(sink=sink)
        .register(Source, Destination, reverse=True)
        .register(NestedSource, NestedDestination, reverse=True)
        .register(SourceMapType, DestinationMapType, reverse=True)
    )
    mapper.build()
    return mapper


# --- End to end -------------------------------------------------------------------

def test_flat_mapping(flat, sink):
    dest = _empty_dest()
    report = flat.map(_src_struct(), dest)
    assert report.ok
    assert report.diagnostics == []
    assert dest == DestStruct(Id=1, Name="Name", Weight=10.5, Marks=[1, 2, 3])
    assert sink.diagnostics == []


def test_destination_storage_is_independent(flat):
    source = _src_struct()
    dest = _empty_dest()
    flat.map(source, dest)
    source.Marks.append(99)
    assert dest.Marks == [1, 2, 3]


def test_nested_mapping(nested):
    dest = Destination()
    report = nested.map(_source(), dest)
    assert report.ok
    assert dest == _expected_destination()


def test_nested_mapping_reverse_direction(nested):
    dest = Source(ID=0, FirstName="", Weight=0.0, Marks=[])
    report = nested.map(_expected_destination(), dest)
    assert report.ok
    assert dest == _source()


def test_mapping_is_idempotent_into_fresh_destinations(nested):
    source = _source()
    first, second = Destination(), Destination()
    nested.map(source, first)
    nested.map(source, second)
    assert first == second
    assert first.Address[0] is not second.Address[0]
    assert first.Address[0].Index is not second.Address[0].Index


def test_optional_record_with_map_of_records(sink):
    mapper = (
        Mapper(sink=sink)
        .register(WireEnvelope, Envelope)
        .register(WireCatalog, Catalog)
        .register(WireItem, Item)
    )
    mapper.build()
    source = WireEnvelope(WireCatalog({"k": WireItem("k", 2)}), note="n")
    dest = Envelope()
    assert mapper.map(source, dest).ok
    assert dest == Envelope(Catalog({"k": Item("k", 2)}), note="n")

    absent = Envelope(catalog=Catalog({}))
    assert mapper.map(WireEnvelope(None), absent).ok
    assert absent.catalog is None


def test_pydantic_models(sink):
    mapper = Mapper(sink=sink).register(UserDTO, User)
    mapper.build()
    dto = UserDTO(user_id=7, full_name="Ann", tags=["a"])
    user = User(id=0, name="")
    assert mapper.map(dto, user).ok
    assert (user.id, user.name, user.tags, user.email) == (7, "Ann", ["a"], None)
    assert user.tags is not dto.tags


def test_identical_types_need_no_registration(sink):
    mapper = Mapper(sink=sink)
    mapper.build()
    dest = SrcStruct(0, "", 0.0, [])
    assert mapper.map(_src_struct(), dest).ok
    assert dest == _src_struct()


def test_custom_tag_name(sink):
    mapper = Mapper(sink=sink, tag_name="wire").register(WireCode, Coded)
    mapper.build()
    dest = Coded()
    mapper.map(WireCode("X1"), dest)
    assert dest.code == "X1"


# --- Partial failures ----------------------------------------------------------------

def test_missing_nested_profile_reports_path_and_keeps_siblings(sink):
    mapper = Mapper(sink=sink).register(Source, Destination)
    mapper.build()
    dest = Destination()
    report = mapper.map(_source(), dest)
    assert not report.ok
    assert report.codes == [DiagnosticCode.MISSING_PROFILE]
    assert report.errors[0].path == "Address[0]"
    assert dest.Id == 1
    assert dest.Name == "Ann"
    assert dest.Address == [None, None]


# --- Lifecycle -------------------------------------------------------------------------

def test_map_before_build(sink):
    mapper = Mapper(sink=sink).register(SrcStruct, DestStruct)
    dest = _empty_dest()
    report = mapper.map(_src_struct(), dest)
    assert report.codes == [DiagnosticCode.MAPPER_NOT_BUILT]
    assert dest == _empty_dest()
    assert mapper.state == MapperState.UNBUILT


def test_register_after_build_raises(flat):
    with pytest.raises(RegistrationClosedError):
        flat.register(DestStruct, SrcStruct)
    assert flat.registrations == [(SrcStruct, DestStruct)]


def test_re_registration_overwrites(sink):
    mapper = Mapper(sink=sink).register(SrcStruct, DestStruct).register(SrcStruct, DestStruct)
    assert mapper.registrations == [(SrcStruct, DestStruct)]


def test_reverse_registration(sink):
    mapper = Mapper(sink=sink).register(SrcStruct, DestStruct, reverse=True)
    assert mapper.registrations == [(SrcStruct, DestStruct), (DestStruct, SrcStruct)]
    mapper.build()
    assert mapper.profile(DestStruct, SrcStruct).as_tuples() == [
        ("Id", "ID"), ("Name", "Name"), ("Weight", "Weight"), ("Marks", "Marks"),
    ]


def test_second_build_is_noop(flat):
    before = flat.profile(SrcStruct, DestStruct)
    report = flat.build()
    assert report.diagnostics == []
    assert flat.profile(SrcStruct, DestStruct) is before
    assert flat.is_built


def test_profile_is_none_before_build(sink):
    mapper = Mapper(sink=sink).register(SrcStruct, DestStruct)
    assert mapper.profile(SrcStruct, DestStruct) is None


def test_invalid_pair_skipped_others_built(sink):
    mapper = Mapper(sink=sink).register(int, DestStruct).register(SrcStruct, DestStruct)
    report = mapper.build()
    assert report.codes == [DiagnosticCode.NOT_A_RECORD]
    assert mapper.profile(int, DestStruct) is None
    assert mapper.profile(SrcStruct, DestStruct) is not None
    assert mapper.is_built


@pytest.mark.parametrize("destination", [{}, 5, FrozenDest(1), [1]])
def test_invalid_destination(flat, destination):
    report = flat.map(_src_struct(), destination)
    assert report.codes == [DiagnosticCode.INVALID_DESTINATION]


# --- Strict mode -----------------------------------------------------------------------

def test_strict_map_raises_after_partial_write(sink):
    mapper = Mapper(sink=sink, strict=True).register(Source, Destination)
    mapper.build()
    dest = Destination()
    with pytest.raises(MappingFailedError) as exc_info:
        mapper.map(_source(), dest)
    assert [d.code for d in exc_info.value.diagnostics] == [DiagnosticCode.MISSING_PROFILE]
    assert dest.Name == "Ann"


def test_strict_build_raises_but_still_builds(sink):
    mapper = Mapper(sink=sink, strict=True).register(int, DestStruct)
    with pytest.raises(MappingFailedError):
        mapper.build()
    assert mapper.is_built


def test_strict_ignores_info_and_warnings(sink):
    @dataclass
    class Extra:
        ID: int
        spare: int

    mapper = Mapper(sink=sink, strict=True).register(Extra, SrcStruct)
    report = mapper.build()
    assert DiagnosticCode.UNMATCHED_FIELD in report.codes
    assert report.ok


def test_strict_from_settings(sink):
    mapper = Mapper(sink=sink, settings=Settings(strict=True))
    mapper.build()
    with pytest.raises(MappingFailedError):
        mapper.map(_src_struct(), {})


def test_strict_from_environment(sink, monkeypatch):
    monkeypatch.setenv("STRUCTMAP_STRICT", "true")
    get_settings.cache_clear()
    mapper = Mapper(sink=sink)
    with pytest.raises(MappingFailedError):
        mapper.map(_src_struct(), _empty_dest())


def test_explicit_strict_false_beats_settings(sink):
    mapper = Mapper(sink=sink, settings=Settings(strict=True), strict=False)
    report = mapper.map(_src_struct(), _empty_dest())
    assert report.codes == [DiagnosticCode.MAPPER_NOT_BUILT]


# --- Sinks -------------------------------------------------------------------------------

def test_per_call_sink_receives_same_diagnostics(flat, sink):
    call_sink = CollectingSink()
    report = flat.map(_src_struct(), 5, sink=call_sink)
    assert call_sink.diagnostics == report.diagnostics
    assert sink.diagnostics == report.diagnostics


def test_build_report_also_reaches_mapper_sink(sink):
    mapper = Mapper(sink=sink).register(int, DestStruct)
    report = mapper.build()
    assert sink.diagnostics == report.diagnostics


def test_default_sink_logs_diagnostics(caplog):
    caplog.set_level(logging.INFO, logger="structmap")
    mapper = Mapper()
    mapper.map(_src_struct(), _empty_dest())
    records = [r for r in caplog.records if getattr(r, "error_code", None)]
    assert [r.error_code for r in records] == ["MAPPER_NOT_BUILT"]
    assert records[0].levelno == logging.ERROR
    assert records[0].name == "structmap.diagnostics"


# --- Concurrency -------------------------------------------------------------------------

def test_concurrent_maps_share_built_mapper(nested):
    def run(i: int) -> Destination:
        dest = Destination()
        report = nested.map(_source(), dest)
        assert report.ok
        return dest

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(run, range(40)))
    assert all(r == _expected_destination() for r in results)


# --- Frozen nested records and allocation failures --------------------------------------

def test_map_keyed_by_frozen_records(sink):
    mapper = Mapper(sink=sink).register(WireKeyed, FrozenKeyed).register(WireKey, FrozenKey)
    assert mapper.build().ok
    dest = FrozenKeyed()
    report = mapper.map(WireKeyed({WireKey("a", "eu"): 1}), dest)
    assert report.ok
    assert dest.lookup == {FrozenKey("a"): 1}


def test_constructor_failure_does_not_abort_map(sink):
    mapper = Mapper(sink=sink).register(WireOuter, ScaledOuter).register(WireInner, ScaledInner)
    mapper.build()
    dest = ScaledOuter()
    report = mapper.map(WireOuter(WireInner(1), label="x"), dest)
    assert report.codes == [DiagnosticCode.ALLOCATION_FAILED]
    assert dest.inner is None
    assert dest.label == "x"


# --- Depth settings ---------------------------------------------------------------------------

def _node_chain(length: int) -> WireNode:
    head = None
    for value in range(length, 0, -1):
        head = WireNode(value, head)
    return head


def test_oversized_max_depth_reports_instead_of_raising(sink):
    mapper = Mapper(sink=sink, max_depth=5000).register(WireNode, Node)
    mapper.build()
    dest = Node()
    report = mapper.map(_node_chain(3000), dest)
    assert report.codes == [DiagnosticCode.RECURSION_LIMIT]
    assert dest.value == 1


def test_explicit_zero_max_depth_is_not_replaced_by_settings(sink):
    mapper = Mapper(sink=sink, settings=Settings(max_depth=10), max_depth=0)
    mapper.register(SrcStruct, DestStruct).build()
    dest = _empty_dest()
    report = mapper.map(_src_struct(), dest)
    assert set(report.codes) == {DiagnosticCode.RECURSION_LIMIT}
    assert dest == _empty_dest()
