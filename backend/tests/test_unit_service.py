import unittest
from decimal import Decimal
from unittest import mock

from sqlalchemy.exc import SQLAlchemyError

from bakesewa import create_app
from bakesewa.errors import ItemNotFoundError, ValidationError
from bakesewa.extensions import db
from bakesewa.models import Unit, UnitConversion
from bakesewa.services.unit_service import (
    DEFAULT_UNITS,
    UnitCatalog,
    create_conversion,
    create_unit,
    deactivate_conversion,
    get_unit_catalog,
    seed_default_units,
)


class UnitServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app({
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "SQLALCHEMY_TRACK_MODIFICATIONS": False,
            "TESTING": True,
        })
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        db.session.query(UnitConversion).delete()
        db.session.query(Unit).delete()
        db.session.commit()
        get_unit_catalog().invalidate()
        seed_default_units()
        self.catalog = get_unit_catalog()
        self.kg = self.catalog.find_unit("kg")
        self.g = self.catalog.find_unit("g")

    def test_seed_is_idempotent(self):
        self.assertEqual(db.session.query(Unit).count(), len(DEFAULT_UNITS))
        self.assertEqual(seed_default_units(), 0)
        self.assertEqual(db.session.query(Unit).count(), len(DEFAULT_UNITS))

    def test_seeded_factors(self):
        self.assertEqual(self.kg.conversion_factor, Decimal("1000"))
        self.assertEqual(self.kg.base_unit_name, "gram")
        self.assertIsNone(self.catalog.find_unit("pkt").base_unit_name)

    def test_create_unit_refreshes_catalog(self):
        unit = create_unit(
            name="Ounces", abbreviation="oz", measurement_type="weight",
            base_unit_name="gram", conversion_factor="28.349523",
        )
        self.assertEqual(self.catalog.get_unit(unit.id).abbreviation, "oz")

    def test_create_unit_validation(self):
        with self.assertRaises(ValidationError):
            create_unit(name="Crates", abbreviation="crt", measurement_type="count", conversion_factor=0)
        with self.assertRaises(ValidationError):
            create_unit(name="Crates", abbreviation="crt", measurement_type="area")
        with self.assertRaises(ValidationError):
            create_unit(name="", abbreviation="crt", measurement_type="count")
        with self.assertRaises(ValidationError):
            create_unit(name="grams", abbreviation="gr", measurement_type="weight")

    def test_create_unit_accepts_every_measurement_type(self):
        unit = create_unit(name="Centimeters", abbreviation="cm", measurement_type="length",
                           base_unit_name="millimeter", conversion_factor="10")
        self.assertEqual(unit.measurement_type, "length")

    def test_base_unit_is_bound_to_one_measurement_type(self):
        with self.assertRaises(ValidationError):
            create_unit(name="Flour Cups", abbreviation="fcup", measurement_type="volume",
                        base_unit_name="gram", conversion_factor="120")
        self.assertIsNone(self.catalog.find_unit("fcup"))

        unit = create_unit(name="Ounces", abbreviation="oz", measurement_type="weight",
                           base_unit_name="gram", conversion_factor="28.349523")
        self.assertEqual(unit.base_unit_name, "gram")

    def test_create_conversion_validation(self):
        with self.assertRaises(ValidationError):
            create_conversion(from_unit_id=self.kg.id, to_unit_id=self.kg.id, conversion_factor="1")
        with self.assertRaises(ValidationError):
            create_conversion(from_unit_id=self.kg.id, to_unit_id=self.g.id, conversion_factor="-2")
        with self.assertRaises(ItemNotFoundError):
            create_conversion(from_unit_id=self.kg.id, to_unit_id=9999, conversion_factor="1")

    def test_deactivate_conversion(self):
        conversion = create_conversion(from_unit_id=self.kg.id, to_unit_id=self.g.id, conversion_factor="1000")
        self.assertIsNotNone(self.catalog.find_conversion(self.kg.id, self.g.id))

        deactivate_conversion(conversion.id)

        self.assertIsNone(self.catalog.find_conversion(self.kg.id, self.g.id))
        self.assertFalse(db.session.get(UnitConversion, conversion.id).is_active)
        with self.assertRaises(ItemNotFoundError):
            deactivate_conversion(9999)

    def test_find_unit_by_id_name_or_abbreviation(self):
        self.assertEqual(self.catalog.find_unit(self.kg.id).id, self.kg.id)
        self.assertEqual(self.catalog.find_unit(str(self.kg.id)).id, self.kg.id)
        self.assertEqual(self.catalog.find_unit("KILOGRAMS").id, self.kg.id)
        self.assertEqual(self.catalog.find_unit(" KG ").id, self.kg.id)
        self.assertIsNone(self.catalog.find_unit("stone"))
        self.assertIsNone(self.catalog.find_unit(""))
        self.assertIsNone(self.catalog.find_unit(None))

    def test_available_conversions(self):
        bag = self.catalog.find_unit("bag")
        create_conversion(from_unit_id=bag.id, to_unit_id=self.kg.id, conversion_factor="25")
        create_conversion(from_unit_id=self.g.id, to_unit_id=bag.id, conversion_factor="0.00004")

        self.assertEqual(len(self.catalog.available_conversions(bag.id)), 2)
        self.assertEqual(len(self.catalog.available_conversions(self.kg.id)), 1)

    def test_load_failure_leaves_empty_catalog(self):
        catalog = UnitCatalog()
        with mock.patch.object(db.session, "query", side_effect=SQLAlchemyError("database is locked")):
            with self.assertLogs("bakesewa.services.unit_service", level="ERROR"):
                catalog.refresh()
        self.assertEqual(catalog.get_units(), [])
        self.assertEqual(catalog.get_conversions(), [])

        catalog.invalidate()
        self.assertEqual(len(catalog.get_units()), len(DEFAULT_UNITS))


if __name__ == "__main__":
    unittest.main()
