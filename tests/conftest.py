"""Shared fixtures for stepfile tests."""

import pytest
import structlog
from structlog.testing import LogCapture

from stepfile.parsing import StepParser
from stepfile.schema import (
    INTEGER,
    LOGICAL,
    BOOLEAN,
    REAL,
    STRING,
    Attribute,
    DefinedTypeDefinition,
    EntityDefinition,
    EnumerationTypeDefinition,
    SchemaRegistry,
    SelectTypeDefinition,
    TypeRef,
    list_of,
    set_of,
)


SAMPLE_FILE = """ISO-10303-21;
HEADER;
FILE_DESCRIPTION(('sample geometry'), '2;1');
FILE_NAME('sample.stp', '2024-01-01T00:00:00', ('A. Author'), ('Example Org'),
  'preprocessor 1.0', 'stepfile tests', '');
FILE_SCHEMA(('GEOMETRY'));
ENDSEC;
DATA;
/* points first, the line refers back to them */
#1 = POINT(0.0, 0.0, 0.0);
#2 = POINT(1.0, 2.0, $);
#3 = LINE('axis', #1, #2);
#4 = CIRCLE('rim', #1, LENGTH_MEASURE(2.5));
#5 = SI_UNIT(*, .MILLI., .METRE.);
#6 = (LENGTH_UNIT() NAMED_UNIT(*) SI_UNIT(.MILLI., .METRE.));
#7 = SHAPE(.SOLID., .T., .U., LENGTH_MEASURE(4.0), (#3, #4, #1));
ENDSEC;
END-ISO-10303-21;
"""


GEOMETRY_EXPRESS = """
SCHEMA geometry;

TYPE length_measure = REAL; END_TYPE;
TYPE label = STRING; END_TYPE;
TYPE measure_value = SELECT (length_measure, label); END_TYPE;
TYPE shape_kind = ENUMERATION OF (solid, surface, wire); END_TYPE;
TYPE si_prefix = ENUMERATION OF (milli, centi, kilo); END_TYPE;
TYPE si_unit_name = ENUMERATION OF (metre, gram); END_TYPE;
TYPE geometry_item = SELECT (point, curve); END_TYPE;

ENTITY point;
  x : REAL;
  y : REAL;
  z : OPTIONAL REAL;
END_ENTITY;

ENTITY curve
  ABSTRACT SUPERTYPE OF (ONEOF (line, circle));
  name : label;
END_ENTITY;

ENTITY line
  SUBTYPE OF (curve);
  start, finish : point;
END_ENTITY;

ENTITY circle
  SUBTYPE OF (curve);
  centre : point;
  radius : measure_value;
END_ENTITY;

ENTITY named_unit;
  dimensions : INTEGER;
END_ENTITY;

ENTITY length_unit
  SUBTYPE OF (named_unit);
END_ENTITY;

ENTITY si_unit
  SUBTYPE OF (named_unit);
  prefix : OPTIONAL si_prefix;
  name : si_unit_name;
DERIVE
  SELF\\named_unit.dimensions : INTEGER := dimensions_for_si_unit(SELF.name);
END_ENTITY;

ENTITY shape;
  kind : shape_kind;
  closed : BOOLEAN;
  valid : LOGICAL;
  size : measure_value;
  items : SET [1:?] OF geometry_item;
END_ENTITY;

ENTITY node;
  label : STRING;
  next : OPTIONAL node;
END_ENTITY;

END_SCHEMA;
"""


def make_geometry_schema() -> SchemaRegistry:
    """Build the geometry schema used across tests, without the EXPRESS reader."""
    registry = SchemaRegistry("geometry")
    registry.register(DefinedTypeDefinition("LENGTH_MEASURE", REAL))
    registry.register(DefinedTypeDefinition("LABEL", STRING))
    registry.register(SelectTypeDefinition("MEASURE_VALUE", options=["LENGTH_MEASURE", "LABEL"]))
    registry.register(
        EnumerationTypeDefinition("SHAPE_KIND", items=["solid", "surface", "wire"])
    )
    registry.register(EnumerationTypeDefinition("SI_PREFIX", items=["milli", "centi", "kilo"]))
    registry.register(EnumerationTypeDefinition("SI_UNIT_NAME", items=["metre", "gram"]))
    registry.register(SelectTypeDefinition("GEOMETRY_ITEM", options=["POINT", "CURVE"]))

    registry.register(
        EntityDefinition(
            "POINT",
            attributes=[
                Attribute("x", REAL),
                Attribute("y", REAL),
                Attribute("z", REAL, optional=True),
            ],
        )
    )
    registry.register(
        EntityDefinition("CURVE", attributes=[Attribute("name", TypeRef("LABEL"))], abstract=True)
    )
    registry.register(
        EntityDefinition(
            "LINE",
            attributes=[
                Attribute("start", TypeRef("POINT")),
                Attribute("finish", TypeRef("POINT")),
            ],
            supertypes=["CURVE"],
        )
    )
    registry.register(
        EntityDefinition(
            "CIRCLE",
            attributes=[
                Attribute("centre", TypeRef("POINT")),
                Attribute("radius", TypeRef("MEASURE_VALUE")),
            ],
            supertypes=["CURVE"],
        )
    )
    registry.register(
        EntityDefinition("NAMED_UNIT", attributes=[Attribute("dimensions", INTEGER)])
    )
    registry.register(EntityDefinition("LENGTH_UNIT", supertypes=["NAMED_UNIT"]))
    registry.register(
        EntityDefinition(
            "SI_UNIT",
            attributes=[
                Attribute("prefix", TypeRef("SI_PREFIX"), optional=True),
                Attribute("name", TypeRef("SI_UNIT_NAME")),
            ],
            supertypes=["NAMED_UNIT"],
            derived_overrides=[("NAMED_UNIT", "dimensions")],
        )
    )
    registry.register(
        EntityDefinition(
            "SHAPE",
            attributes=[
                Attribute("kind", TypeRef("SHAPE_KIND")),
                Attribute("closed", BOOLEAN),
                Attribute("valid", LOGICAL),
                Attribute("size", TypeRef("MEASURE_VALUE")),
                Attribute("items", set_of("GEOMETRY_ITEM", lower=1)),
            ],
        )
    )
    registry.register(
        EntityDefinition(
            "NODE",
            attributes=[
                Attribute("label", STRING),
                Attribute("next", TypeRef("NODE"), optional=True),
            ],
        )
    )
    registry.register(
        EntityDefinition(
            "POLYLINE",
            attributes=[Attribute("points", list_of("POINT", lower=2))],
        )
    )
    return registry


@pytest.fixture(autouse=True)
def reset_structlog():
    """Restore structlog defaults after every test."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def log_output():
    """Capture structlog events emitted during a test."""
    capture = LogCapture()
    structlog.configure(processors=[capture])
    return capture


@pytest.fixture
def parser():
    """A fresh exchange-structure parser."""
    return StepParser()


@pytest.fixture
def geometry_schema():
    """The programmatic geometry schema."""
    return make_geometry_schema()


@pytest.fixture
def sample_text():
    """Text of a small complete exchange structure."""
    return SAMPLE_FILE


@pytest.fixture
def sample_file(parser):
    """The sample exchange structure, parsed."""
    return parser.parse(SAMPLE_FILE)
