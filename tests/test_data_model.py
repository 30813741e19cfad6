import unittest

from paap_doctor.data_model import DataModel, item_category, value_range_label, value_range_labels
from paap_doctor.errors import NoCodesFound, NoItemsFound
from paap_doctor.loader import Sheet
from paap_doctor.models import CpvCode, ProcurementItem


REGISTRY = {
    "71320000-7": CpvCode("71320000-7", "Servicii de proiectare tehnica", "Engineering design services"),
    "45233140-2": CpvCode("45233140-2", "Lucrari de drumuri", "Roadworks"),
}


def sample_model():
    return DataModel(
        [
            ProcurementItem(1, "Proiect pod", "71320000-7", 80000.0, 95200.0),
            ProcurementItem(2, "Asfaltare strada", "45233140-2", 250000.0, 297500.0),
            ProcurementItem(3, "Papetarie", "", 4000.0, 4760.0),
            ProcurementItem(4, "Studiu gratuit", "71320000-7", 0.0, 0.0),
        ],
        REGISTRY,
    )


class ValueRangeTests(unittest.TestCase):
    def test_edges_are_inclusive_below(self):
        self.assertEqual(value_range_label(10000.0), "10,000-50,000")
        self.assertEqual(value_range_label(9999.99), "0-10,000")
        self.assertEqual(value_range_label(100000.0), "100,000+")
        self.assertEqual(value_range_label(0.0), "0-10,000")

    def test_labels_in_order(self):
        self.assertEqual(
            value_range_labels(),
            ["0-10,000", "10,000-50,000", "50,000-100,000", "100,000+"],
        )

    def test_buckets_always_present(self):
        buckets = sample_model().get_procurement_items_by_value_range()
        self.assertEqual(list(buckets), value_range_labels())
        self.assertEqual(len(buckets["0-10,000"]), 2)
        self.assertEqual(len(buckets["10,000-50,000"]), 0)
        self.assertEqual(buckets["100,000+"][0].object_name, "Asfaltare strada")


class CategoryTests(unittest.TestCase):
    def test_registry_category_or_uncategorized(self):
        self.assertEqual(item_category(ProcurementItem(1, "Proiect", "71320000-7"), REGISTRY), "71")
        self.assertEqual(item_category(ProcurementItem(1, "Necunoscut", "99999999-9"), REGISTRY), "00")
        self.assertIsNone(item_category(ProcurementItem(1, "", "71320000-7"), REGISTRY))

    def test_first_resolvable_code_wins(self):
        item = ProcurementItem(1, "Mixt", "99999999-9, 45233140-2, 71320000-7")
        self.assertEqual(item_category(item, REGISTRY), "45")

    def test_items_by_category(self):
        buckets = sample_model().get_procurement_items_by_category()
        self.assertEqual(sorted(buckets), ["00", "45", "71"])
        self.assertEqual([item.row_number for item in buckets["71"]], [1, 4])

    def test_value_by_category_skips_zero_totals(self):
        model = DataModel(
            [
                ProcurementItem(1, "Proiect", "71320000-7", 0.0),
                ProcurementItem(2, "Drum", "45233140-2", 500.0),
            ],
            REGISTRY,
        )
        self.assertEqual(model.get_value_by_cpv_category(), {"45": 500.0})


class QueryTests(unittest.TestCase):
    def test_top_items_are_positive_and_descending(self):
        top = sample_model().get_top_procurement_items_by_value(10)
        self.assertEqual([item.row_number for item in top], [2, 1, 3])
        self.assertEqual(sample_model().get_top_procurement_items_by_value(1)[0].row_number, 2)
        self.assertEqual(sample_model().get_top_procurement_items_by_value(0), [])

    def test_totals(self):
        model = sample_model()
        self.assertEqual(model.get_total_value_without_tva(), 334000.0)
        self.assertEqual(model.get_total_value_with_tva(), 397460.0)

    def test_search_is_case_insensitive(self):
        self.assertEqual([item.row_number for item in sample_model().search("ASFALT")], [2])

    def test_search_by_registry_name(self):
        self.assertEqual([item.row_number for item in sample_model().search("engineering")], [1, 4])

    def test_search_by_code(self):
        model = sample_model()
        for item in model.items:
            for code in item.cpv_codes:
                self.assertIn(item, model.search(code))

    def test_blank_query_returns_everything(self):
        self.assertEqual(len(sample_model().search("   ")), 4)

    def test_code_lookups(self):
        model = sample_model()
        self.assertEqual(model.get_cpv_code_name("45233140-2"), "Lucrari de drumuri")
        self.assertEqual(model.get_cpv_code_name("45233140-2", romanian=False), "Roadworks")
        self.assertEqual(model.get_cpv_code_name("00000000-0"), "")
        self.assertIsNone(model.get_cpv_code("00000000-0"))

    def test_statistics(self):
        stats = sample_model().get_statistics()
        self.assertEqual(stats["item_count"], 4)
        self.assertEqual(stats["cpv_code_count"], 2)
        self.assertEqual(stats["items_with_cpv"], 3)
        self.assertEqual(stats["items_with_value"], 3)
        self.assertEqual(stats["categories"], 3)

    def test_dataframe(self):
        frame = sample_model().to_dataframe()
        self.assertEqual(len(frame), 4)
        self.assertEqual(list(frame["category"]), ["71", "45", "00", "71"])
        self.assertEqual(frame.loc[1, "value_range"], "100,000+")

    def test_dataframe_of_search_matches(self):
        model = sample_model()
        frame = model.to_dataframe(model.search("drumuri"))
        self.assertEqual(list(frame["row_number"]), [2])
        self.assertEqual(list(frame["cpv_codes"]), ["45233140-2"])
        self.assertEqual(list(frame["category"]), ["45"])


class ImportTests(unittest.TestCase):
    def test_returned_collections_are_copies(self):
        model = sample_model()
        model.items.clear()
        model.cpv_codes.clear()
        self.assertEqual(len(model.items), 4)
        self.assertEqual(len(model.cpv_codes), 2)

    def test_failed_import_keeps_previous_items(self):
        model = sample_model()
        with self.assertRaises(NoItemsFound):
            model.load_procurement_file(Sheet.from_values("Blank", []))
        self.assertEqual(len(model.items), 4)
        self.assertEqual(len(model.cpv_codes), 2)

    def test_successful_import_replaces_items(self):
        model = sample_model()
        sheet = Sheet.from_values("PAAP", [
            ["Nr", "Denumire", "Cod CPV", "Valoare"],
            [1, "Toner", "30125100-2", 900],
        ])
        result = model.load_procurement_file(sheet)
        self.assertEqual(len(result.items), 1)
        self.assertEqual([item.object_name for item in model.items], ["Toner"])
        self.assertEqual(len(model.cpv_codes), 2)

    def test_registry_import_replaces_codes(self):
        model = sample_model()
        model.load_cpv_file(Sheet.from_values("CPV", [["30125100-2", "Toner", "Toner cartridges"]]))
        self.assertEqual(list(model.cpv_codes), ["30125100-2"])
        self.assertEqual(len(model.items), 4)

    def test_failed_registry_import_keeps_codes_and_categories(self):
        model = sample_model()
        with self.assertRaises(NoCodesFound):
            model.load_cpv_file(Sheet.from_values("Empty", [["nimic aici"]]))
        self.assertEqual(sorted(model.cpv_codes), ["45233140-2", "71320000-7"])
        self.assertEqual(sorted(model.get_procurement_items_by_category()), ["00", "45", "71"])
        self.assertEqual(model.get_cpv_code_name("45233140-2"), "Lucrari de drumuri")

    def test_registry_names_are_searchable_after_both_imports(self):
        model = DataModel()
        model.load_cpv_file(Sheet.from_values("CPV", [
            ["Cod CPV", "Denumire", "Descriere EN"],
            ["45233140-2", "Lucrari de drumuri", "Roadworks"],
            ["71320000-7", "Servicii de proiectare tehnica", "Engineering design services"],
        ]))
        model.load_procurement_file(Sheet.from_values("PAAP", [
            ["Nr", "Denumire", "Cod CPV", "Valoare"],
            [1, "Asfaltare", "45233140-2", 100],
            [2, "Pod", "71320000-7", 200],
            [3, "Reparatii", "45233140-2", 50],
        ]))
        self.assertEqual([item.row_number for item in model.search("drumuri")], [1, 3])
        self.assertEqual([item.row_number for item in model.search("PROIECTARE")], [2])


if __name__ == "__main__":
    unittest.main()
