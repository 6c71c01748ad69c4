"""facility_0001_init

Create PostGIS facility catalog:
- facility_types (seeded)
- facilities (geography point with GIST index, soft delete)
- facility_external_ids (dedup lookup by provider id)
"""

from alembic import op

revision = "facility_0001"
down_revision = None
branch_labels = None
depends_on = None

_FACILITY_TYPES = (
    ("toilet", "Accessible Toilet", "Public toilets with accessibility features", "toilet", "amenity", 1),
    ("parking", "Accessible Parking", "Designated accessible parking spaces", "parking", "transport", 2),
    ("ramp", "Wheelchair Ramp", "Ramps for wheelchair access", "ramp", "access", 3),
    ("elevator", "Elevator", "Elevators for multi-level access", "elevator", "access", 4),
    ("entrance", "Accessible Entrance", "Step-free building entrances", "entrance", "access", 5),
    ("station", "Transit Station", "Accessible public transit stations", "station", "transport", 6),
)


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS postgis")
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS facility_types (
          id VARCHAR(50) PRIMARY KEY,
          name VARCHAR(100) NOT NULL,
          description TEXT NULL,
          icon VARCHAR(50) NULL,
          category VARCHAR(50) NOT NULL,
          sort_order INTEGER NOT NULL DEFAULT 0
        )
        """
    )
    values = ",\n".join(
        "('{}', '{}', '{}', '{}', '{}', {})".format(*row) for row in _FACILITY_TYPES
    )
    op.execute(
        "INSERT INTO facility_types (id, name, description, icon, category, sort_order) VALUES\n"
        f"{values}\nON CONFLICT (id) DO NOTHING"
    )
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS facilities (
          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
          name VARCHAR(255) NOT NULL,
          description TEXT NULL,
          facility_type_id VARCHAR(50) NOT NULL REFERENCES facility_types(id),
          location GEOGRAPHY(POINT, 4326) NOT NULL,
          lat DOUBLE PRECISION NOT NULL CHECK (lat BETWEEN -90 AND 90),
          lng DOUBLE PRECISION NOT NULL CHECK (lng BETWEEN -180 AND 180),
          address TEXT NULL,
          wheelchair_accessible BOOLEAN NULL,
          has_ramp BOOLEAN NULL,
          has_elevator BOOLEAN NULL,
          has_accessible_toilet BOOLEAN NULL,
          has_accessible_parking BOOLEAN NULL,
          has_automatic_door BOOLEAN NULL,
          opening_hours JSONB NULL,
          phone VARCHAR(50) NULL,
          website TEXT NULL,
          verified BOOLEAN NOT NULL DEFAULT FALSE,
          last_verified_at TIMESTAMPTZ NULL,
          data_quality_score NUMERIC(3, 2) NULL CHECK (data_quality_score BETWEEN 0 AND 1),
          data_sources JSONB NOT NULL DEFAULT '[]'::jsonb,
          external_ids JSONB NOT NULL DEFAULT '{}'::jsonb,
          created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
          updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
          deleted_at TIMESTAMPTZ NULL
        )
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS idx_facilities_location ON facilities USING GIST (location)")
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_facilities_type ON facilities (facility_type_id) WHERE deleted_at IS NULL"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_facilities_wheelchair "
        "ON facilities (wheelchair_accessible) WHERE deleted_at IS NULL"
    )
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS facility_external_ids (
          source VARCHAR(64) NOT NULL,
          external_id VARCHAR(128) NOT NULL,
          facility_id UUID NOT NULL REFERENCES facilities(id) ON DELETE CASCADE,
          created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
          PRIMARY KEY (source, external_id, facility_id)
        )
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_facility_external_ids_facility ON facility_external_ids (facility_id)"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS facility_external_ids")
    op.execute("DROP TABLE IF EXISTS facilities")
    op.execute("DROP TABLE IF EXISTS facility_types")
