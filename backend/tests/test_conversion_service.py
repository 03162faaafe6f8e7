# Overview: Pytest coverage for unit conversion resolution and dual-unit helpers.

from decimal import Decimal

import pytest

from bakesewa.errors import ConversionNotFoundError
from bakesewa.extensions import db
from bakesewa.models import Unit
from bakesewa.services.conversion_service import (
    can_convert,
    convert_quantity,
    dual_unit_stock,
    primary_to_secondary,
    secondary_to_primary,
    unit_display,
)
from bakesewa.services.unit_service import (
    UnitCatalog,
    create_conversion,
    create_unit,
    deactivate_conversion,
    get_unit_catalog,
)

from conftest import make_item


class TestConvertQuantity:

    def test_same_unit_is_identity_without_lookup(self, db_session):
        # Unit 999 does not exist; identity never touches the catalog
        assert convert_quantity("12.5", 999, 999) == Decimal("12.5")

    def test_shared_base_unit(self, units):
        assert convert_quantity(500, units["g"], units["kg"]) == Decimal("0.5")
        assert convert_quantity(2, units["kg"], units["g"]) == Decimal("2000")
        assert convert_quantity(1, units["cups"], units["tbsp"]) == Decimal("16")
        assert convert_quantity(3, units["tsp"], units["tbsp"]) == Decimal("1")

    def test_direct_override_beats_base_unit(self, units):
        # Ingredient-specific: one cup of flour is 120 g, not 240 ml
        create_conversion(from_unit_id=units["cups"], to_unit_id=units["g"], conversion_factor="120")
        assert convert_quantity(2, units["cups"], units["g"]) == Decimal("240")

    def test_reverse_override_divides(self, units):
        create_conversion(from_unit_id=units["cups"], to_unit_id=units["g"], conversion_factor="120")
        assert convert_quantity(360, units["g"], units["cups"]) == Decimal("3")

    def test_override_applies_before_shared_base(self, units):
        create_conversion(from_unit_id=units["g"], to_unit_id=units["kg"], conversion_factor="0.002")
        assert convert_quantity(500, units["g"], units["kg"]) == Decimal("1")

    def test_cross_type_raises(self, units):
        with pytest.raises(ConversionNotFoundError) as exc:
            convert_quantity(1, units["kg"], units["L"])
        assert exc.value.from_unit_id == units["kg"]
        assert exc.value.to_unit_id == units["L"]

    def test_units_without_base_need_explicit_row(self, units):
        assert not can_convert(units["pkt"], units["kg"])
        create_conversion(from_unit_id=units["pkt"], to_unit_id=units["kg"], conversion_factor="0.25")
        assert can_convert(units["pkt"], units["kg"])
        # Reverse row: 0.5 kg / 0.25 kg per packet
        assert convert_quantity(Decimal("0.5"), units["kg"], units["pkt"]) == Decimal("2")

    def test_deactivated_override_is_ignored(self, units):
        conversion = create_conversion(from_unit_id=units["pkt"], to_unit_id=units["pcs"], conversion_factor="12")
        assert convert_quantity(1, units["pkt"], units["pcs"]) == Decimal("12")
        deactivate_conversion(conversion.id)
        with pytest.raises(ConversionNotFoundError):
            convert_quantity(1, units["pkt"], units["pcs"])

    def test_explicit_catalog_is_used(self, units):
        catalog = UnitCatalog()
        create_unit(
            name="Sacks", abbreviation="sack", measurement_type="weight",
            base_unit_name="gram", conversion_factor="25000", catalog=catalog,
        )
        sack = catalog.find_unit("sack")
        assert convert_quantity(2, sack.id, units["kg"], catalog=catalog) == Decimal("50")

    def test_shared_base_name_across_types_raises(self, units):
        # Inserted directly; create_unit refuses this combination
        db.session.add(Unit(
            name="Flour Cups", abbreviation="fcup", measurement_type="volume",
            base_unit_name="gram", conversion_factor=Decimal("120"), is_active=True,
        ))
        db.session.commit()
        catalog = get_unit_catalog()
        catalog.refresh()
        cup = catalog.find_unit("fcup")

        with pytest.raises(ConversionNotFoundError):
            convert_quantity(1, cup.id, units["kg"])

    @pytest.mark.parametrize("quantity", ["1", "0.333333", "2500"])
    def test_round_trip_through_base_unit(self, units, quantity):
        there = convert_quantity(quantity, units["lbs"], units["g"])
        back = convert_quantity(there, units["g"], units["lbs"])
        assert abs(back - Decimal(quantity)) < Decimal("0.000001")

    @pytest.mark.parametrize("quantity", ["1", "0.75", "36"])
    def test_round_trip_through_override(self, units, quantity):
        create_conversion(from_unit_id=units["box"], to_unit_id=units["pcs"], conversion_factor="24")
        there = convert_quantity(quantity, units["box"], units["pcs"])
        back = convert_quantity(there, units["pcs"], units["box"])
        assert abs(back - Decimal(quantity)) < Decimal("0.000001")

    def test_unknown_unit_raises(self, units):
        with pytest.raises(ConversionNotFoundError):
            convert_quantity(1, units["kg"], 424242)


class TestDualUnitHelpers:

    def test_secondary_primary_round_trip(self):
        assert secondary_to_primary(2, 25) == Decimal("50")
        assert primary_to_secondary(50, 25) == Decimal("2")

    def test_primary_to_secondary_rejects_zero_rate(self):
        with pytest.raises(ValueError):
            primary_to_secondary(10, 0)

    def test_dual_unit_stock(self, units):
        item = make_item("Sugar", units["kg"], opening_stock="75")
        item.secondary_unit_id = units["bag"]
        item.conversion_rate = Decimal("25")
        stock = dual_unit_stock(item)
        assert stock["primary_stock"] == "75"
        assert stock["secondary_stock"] == "3"
        assert stock["secondary_unit_id"] == units["bag"]

    def test_dual_unit_stock_without_secondary(self, units):
        item = make_item("Salt", units["kg"], opening_stock="4")
        assert dual_unit_stock(item)["secondary_stock"] is None

    def test_unit_display(self):
        assert unit_display("50", "kg", "2", "bag") == "50 kg (2 bag)"
        assert unit_display("1.5", "kg") == "1.5 kg"


def test_catalog_ttl_reloads_after_expiry(db_session, units):
    now = [0.0]
    catalog = UnitCatalog(ttl_seconds=60, clock=lambda: now[0])
    assert len(catalog.get_units()) == len(get_unit_catalog().get_units())

    create_unit(name="Trays", abbreviation="tray", measurement_type="count")  # refreshes the app catalog only
    assert catalog.find_unit("tray") is None

    now[0] = 61.0
    assert catalog.find_unit("tray") is not None
