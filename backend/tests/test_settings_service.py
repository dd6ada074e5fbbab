import unittest

from gstpos import create_app
from gstpos.extensions import db
from gstpos.models import Store, StoreConfig
from gstpos.services import settings_service
from gstpos.services.settings_service import (
    SettingsNotFoundError,
    SettingsValidationError,
    StoreSettings,
)


class SettingsServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app({
            "SECRET_KEY": "test",
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "TESTING": True,
            "LOG_LEVEL": "WARNING",
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
        db.session.query(StoreConfig).delete()
        db.session.query(Store).delete()
        db.session.commit()

        self.store = Store(name="Main", code="MAIN")
        self.other = Store(name="Branch", code="BR1")
        db.session.add_all([self.store, self.other])
        db.session.commit()

    def test_defaults_when_nothing_is_stored(self):
        settings = settings_service.get_store_settings(self.store.id)
        self.assertEqual(settings, StoreSettings())
        self.assertEqual(settings.bill_prefix, "INV")
        self.assertEqual(settings.rounding_unit_cents, 100)
        self.assertEqual(settings.loyalty_point_value_cents, 100)
        self.assertEqual(settings.held_bill_ttl_hours, 24)
        self.assertFalse(settings.restock_on_cancel)
        self.assertFalse(settings.allow_excess_discount)

    def test_set_and_read_back(self):
        settings_service.set_store_setting(self.store.id, "billing.rounding_unit_cents", "1")
        settings_service.set_store_setting(self.store.id, "restock_on_cancel", True)
        settings = settings_service.set_store_setting(self.store.id, "bill_prefix", " POS ")

        self.assertEqual(settings.rounding_unit_cents, 1)
        self.assertTrue(settings.restock_on_cancel)
        self.assertEqual(settings.bill_prefix, "POS")

        row = db.session.query(StoreConfig).filter_by(
            store_id=self.store.id, key="billing.restock_on_cancel"
        ).one()
        self.assertEqual(row.value, "true")

    def test_settings_are_per_store(self):
        settings_service.set_store_setting(self.store.id, "held_bill_ttl_hours", 4)

        self.assertEqual(settings_service.get_store_settings(self.store.id).held_bill_ttl_hours, 4)
        self.assertEqual(settings_service.get_store_settings(self.other.id).held_bill_ttl_hours, 24)

    def test_overwrite_keeps_single_row(self):
        settings_service.set_store_setting(self.store.id, "loyalty_earn_points_per_100", 1)
        settings_service.set_store_setting(self.store.id, "loyalty_earn_points_per_100", 2)

        count = db.session.query(StoreConfig).filter_by(
            store_id=self.store.id, key="billing.loyalty_earn_points_per_100"
        ).count()
        self.assertEqual(count, 1)
        self.assertEqual(
            settings_service.get_store_settings(self.store.id).loyalty_earn_points_per_100, 2
        )

    def test_rejects_unknown_keys_and_bad_values(self):
        bad = [
            ("billing.colour", "blue"),
            ("rounding_unit_cents", 0),
            ("rounding_unit_cents", "1.5"),
            ("held_bill_ttl_hours", -1),
            ("loyalty_earn_points_per_100", -1),
            ("loyalty_point_value_cents", True),
            ("restock_on_cancel", "maybe"),
            ("bill_prefix", "   "),
            ("bill_prefix", "X" * 17),
        ]
        for key, value in bad:
            with self.subTest(key=key, value=value):
                with self.assertRaises(SettingsValidationError):
                    settings_service.set_store_setting(self.store.id, key, value)

        self.assertEqual(db.session.query(StoreConfig).count(), 0)

    def test_unknown_store(self):
        with self.assertRaises(SettingsNotFoundError):
            settings_service.set_store_setting(999999, "bill_prefix", "POS")

    def test_unrelated_config_rows_are_ignored(self):
        db.session.add(StoreConfig(store_id=self.store.id, key="receipt.footer", value="Thanks"))
        db.session.add(StoreConfig(store_id=self.store.id, key="billing.retired_option", value="x"))
        db.session.commit()

        self.assertEqual(settings_service.get_store_settings(self.store.id), StoreSettings())


if __name__ == "__main__":
    unittest.main()
