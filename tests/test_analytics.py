import unittest

from paap_doctor import analytics
from paap_doctor.config import AnalyticsSettings
from paap_doctor.data_model import DataModel
from paap_doctor.models import CpvCode, ProcurementItem


REGISTRY = {
    "45233140-2": CpvCode("45233140-2", "Lucrari de drumuri", "Roadworks"),
    "71320000-7": CpvCode("71320000-7", "Servicii de proiectare tehnica", "Engineering design services"),
    "30197630-1": CpvCode("30197630-1", "Hartie de imprimanta", "Printing paper"),
}


def concentrated_model():
    return DataModel(
        [
            ProcurementItem(1, "Drum comunal", "45233140-2", 600.0, 714.0, "Buget local", "15.03.2024"),
            ProcurementItem(2, "Proiect pod", "71320000-7", 300.0, 357.0),
            ProcurementItem(3, "Hartie A4", "30197630-1", 100.0, 119.0),
        ],
        REGISTRY,
    )


def valued_model(values):
    return DataModel([ProcurementItem(index + 1, f"Pozitia {index + 1}", "", value) for index, value in enumerate(values)])


class CategoryAnalyticsTests(unittest.TestCase):
    def test_breakdown_is_ranked_by_value(self):
        breakdown = analytics.category_breakdown(concentrated_model())
        self.assertEqual([entry.category for entry in breakdown], ["45", "71", "30"])
        self.assertEqual(breakdown[0].name, "Lucrari de drumuri")
        self.assertAlmostEqual(breakdown[0].share, 60.0)
        self.assertEqual(breakdown[1].item_count, 1)
        self.assertEqual(breakdown[1].average, 300.0)

    def test_category_names(self):
        self.assertEqual(analytics.category_name("00", REGISTRY), "Uncategorized")
        self.assertEqual(analytics.category_name("", REGISTRY), "Unknown")
        self.assertEqual(analytics.category_name("99", REGISTRY), "Category 99")
        self.assertEqual(analytics.category_name("71", REGISTRY), "Servicii de proiectare tehnica")

    def test_concentration(self):
        result = analytics.concentration(concentrated_model())
        self.assertAlmostEqual(result.top_shares[1], 60.0)
        self.assertAlmostEqual(result.top_shares[3], 100.0)
        self.assertAlmostEqual(result.top_shares[10], 100.0)
        self.assertEqual(result.label, "high")
        self.assertAlmostEqual(result.hhi, 46.0)
        self.assertAlmostEqual(result.top_category_share, 60.0)

    def test_concentration_labels(self):
        self.assertEqual(analytics.concentration_label(75.0), "moderate")
        self.assertEqual(analytics.concentration_label(75.1), "high")
        self.assertEqual(analytics.concentration_label(50.0), "low")

    def test_empty_model(self):
        result = analytics.concentration(DataModel())
        self.assertEqual(result.hhi, 0.0)
        self.assertEqual(result.label, "low")
        self.assertEqual(analytics.category_breakdown(DataModel()), [])


class ValueAnalyticsTests(unittest.TestCase):
    def test_pareto(self):
        result = analytics.pareto(valued_model([100, 50, 30, 20]))
        self.assertEqual(result.item_count, 3)
        self.assertAlmostEqual(result.item_share, 75.0)
        self.assertAlmostEqual(result.target_share, 80.0)

    def test_pareto_is_repeatable_on_one_snapshot(self):
        snapshot = valued_model([50, 50, 30, 20, 0]).snapshot()
        first = analytics.pareto(snapshot)
        second = analytics.pareto(snapshot)
        self.assertEqual(first, second)
        self.assertEqual((first.item_count, first.total_items), (3, 5))
        self.assertAlmostEqual(first.item_share, 60.0)

    def test_no_outlier_at_exact_threshold(self):
        stats = analytics.outlier_stats(valued_model([10, 10, 10, 10, 100]))
        self.assertAlmostEqual(stats.mean, 28.0)
        self.assertAlmostEqual(stats.std_dev, 36.0)
        self.assertAlmostEqual(stats.threshold, 100.0)
        self.assertEqual(stats.outliers, [])

    def test_standard_deviation_is_population(self):
        stats = analytics.outlier_stats(valued_model([2, 4, 4, 4, 5, 5, 7, 9]))
        self.assertAlmostEqual(stats.mean, 5.0)
        self.assertAlmostEqual(stats.std_dev, 2.0)
        self.assertAlmostEqual(stats.threshold, 9.0)
        self.assertEqual(stats.outliers, [])

    def test_outlier_deviation(self):
        stats = analytics.outlier_stats(valued_model([10] * 9 + [1000]))
        self.assertAlmostEqual(stats.mean, 109.0)
        self.assertAlmostEqual(stats.std_dev, 297.0)
        self.assertEqual(len(stats.outliers), 1)
        self.assertEqual(stats.outliers[0].item.value_without_tva, 1000.0)
        self.assertAlmostEqual(stats.outliers[0].deviation, 3.0)

    def test_outlier_sigma_is_configurable(self):
        stats = analytics.outlier_stats(valued_model([10, 10, 10, 10, 100]), AnalyticsSettings(outlier_sigma=1.0))
        self.assertEqual(len(stats.outliers), 1)

    def test_value_distribution(self):
        ranges = analytics.value_distribution(valued_model([5000, 20000, 60000, 150000]))
        self.assertEqual([entry.count for entry in ranges], [1, 1, 1, 1])
        self.assertAlmostEqual(ranges[3].value_share, 150000 * 100 / 235000)
        self.assertAlmostEqual(ranges[0].count_share, 25.0)

    def test_general_statistics(self):
        stats = analytics.general_statistics(concentrated_model())
        self.assertEqual(stats["item_count"], 3)
        self.assertEqual(stats["total_without_tva"], 1000.0)
        self.assertAlmostEqual(stats["tva_amount"], 190.0)
        self.assertAlmostEqual(stats["tva_share"], 19.0)
        self.assertEqual(stats["median_value"], 300.0)
        self.assertEqual(stats["min_positive_value"], 100.0)
        self.assertEqual(stats["distinct_cpv_codes"], 3)
        self.assertEqual(stats["items_without_cpv"], 0)

    def test_median(self):
        self.assertEqual(analytics.median([4.0, 1.0, 3.0, 2.0]), 2.5)
        self.assertEqual(analytics.median([]), 0.0)
        self.assertEqual(analytics.median([7.0, 1.0, 3.0]), 3.0)
        self.assertEqual(analytics.general_statistics(valued_model([10, 20, 30, 40]))["average_value"], 25.0)


class TimeAnalyticsTests(unittest.TestCase):
    def test_extract_month(self):
        self.assertEqual(analytics.extract_month("15.03.2024"), 3)
        self.assertEqual(analytics.extract_month("martie 2024"), 3)
        self.assertEqual(analytics.extract_month("ianuarie"), 1)
        self.assertEqual(analytics.extract_month("2024-07-01"), 7)
        self.assertEqual(analytics.extract_month("05/25/2024"), 5)
        self.assertIsNone(analytics.extract_month("13/25/2024"))
        self.assertIsNone(analytics.extract_month(""))
        self.assertIsNone(analytics.extract_month(None))

    def test_month_abbreviation(self):
        self.assertEqual(analytics.month_abbreviation("noiembrie"), "Nov")
        self.assertIsNone(analytics.month_abbreviation("curand"))

    def test_extract_quarter(self):
        self.assertEqual(analytics.extract_quarter("15.08.2024"), 3)
        self.assertEqual(analytics.extract_quarter("Q3"), 3)
        self.assertEqual(analytics.extract_quarter("trim 2"), 2)
        self.assertIsNone(analytics.extract_quarter("anul viitor"))

    def test_has_time_data(self):
        self.assertTrue(analytics.has_time_data(concentrated_model()))
        self.assertFalse(analytics.has_time_data(valued_model([1, 2, 3])))
        self.assertFalse(analytics.has_time_data(DataModel()))

    def test_time_distribution(self):
        distribution = analytics.time_distribution(concentrated_model())
        self.assertEqual(distribution.months[2].label, "Mar")
        self.assertEqual(distribution.months[2].count, 1)
        self.assertEqual(distribution.quarters[0].value, 600.0)
        self.assertEqual(distribution.identified_items, 1)
        self.assertEqual(distribution.peak_quarter.label, "Q1")
        self.assertAlmostEqual(distribution.peak_quarter_share, 100.0)

    def test_completion_date_is_used_when_initiation_is_missing(self):
        model = DataModel([ProcurementItem(1, "Paza", "", 100.0, completion_date="decembrie")])
        self.assertEqual(analytics.time_distribution(model).quarters[3].count, 1)

    def test_seasonal_distribution(self):
        seasonal = analytics.seasonal_distribution(concentrated_model())
        self.assertEqual([season.label for season in seasonal.seasons], ["Spring", "Summer", "Autumn", "Winter"])
        self.assertEqual(seasonal.peak, "Spring")
        self.assertEqual(seasonal.low, "Summer")
        self.assertEqual(seasonal.label, "HIGH")

    def test_seasonal_without_dates(self):
        seasonal = analytics.seasonal_distribution(valued_model([1, 2]))
        self.assertIsNone(seasonal.peak)
        self.assertEqual(seasonal.variation, 0.0)


class ScoreTests(unittest.TestCase):
    def test_funding_sources(self):
        sources = analytics.funding_sources(concentrated_model())
        self.assertEqual([(bucket.label, bucket.count, bucket.value) for bucket in sources], [
            ("Buget local", 1, 600.0),
            ("Unknown", 2, 400.0),
        ])

    def test_maturity(self):
        scores = analytics.maturity_scores(concentrated_model())
        self.assertAlmostEqual(scores.data_quality, 700.0 / 9)
        self.assertAlmostEqual(scores.category_management, 90.0)
        self.assertAlmostEqual(scores.process_efficiency, 30.0)
        self.assertEqual(scores.planning, 85.0)

    def test_risk(self):
        scores = analytics.risk_scores(concentrated_model())
        self.assertAlmostEqual(scores.concentration, 6.0)
        self.assertEqual(scores.high_value, 0.0)
        self.assertEqual(scores.data_quality, 0.0)
        self.assertEqual(scores.timing, 2.0)
        self.assertAlmostEqual(scores.overall, 20.0)

    def test_repeated_calls_are_identical(self):
        model = concentrated_model()
        self.assertEqual(analytics.concentration(model), analytics.concentration(model))
        self.assertEqual(analytics.time_distribution(model), analytics.time_distribution(model))


if __name__ == "__main__":
    unittest.main()
