from __future__ import annotations

import math
import unittest

from qm_ingest.reporting import (
    BAND_BEHIND,
    BAND_MET,
    BAND_NEAR,
    attainment_band,
    attainment_pct,
    filter_rows,
    project_totals,
    rows_to_frame,
    rows_to_json,
)
from qm_ingest.rows import normalize_row


def make_row(project, agent, soll=None, days=None):
    raw = {"Projekt": project, "Agent": agent, "Soll": soll}
    raw.update({str(day): value for day, value in (days or {}).items()})
    return normalize_row(raw, "Abschlüsse 03.2024")


class AttainmentTests(unittest.TestCase):
    def test_pct_needs_a_positive_target(self):
        self.assertEqual(attainment_pct(make_row("P", "A", soll=20, days={1: 10, 2: 5})), 75.0)
        self.assertIsNone(attainment_pct(make_row("P", "A", soll=0, days={1: 3})))
        self.assertIsNone(attainment_pct(make_row("P", "A", days={1: 3})))

    def test_bands(self):
        self.assertEqual(attainment_band(100.0), BAND_MET)
        self.assertEqual(attainment_band(125.0), BAND_MET)
        self.assertEqual(attainment_band(80.0), BAND_NEAR)
        self.assertEqual(attainment_band(79.9), BAND_BEHIND)
        self.assertIsNone(attainment_band(None))


class FilterTests(unittest.TestCase):
    def setUp(self):
        self.rows = [
            make_row("Solar Nord", "Anna Berg"),
            make_row("Glasfaser", "Ben Ott"),
            make_row("Solar Süd", ""),
        ]

    def test_substring_match_is_case_insensitive(self):
        self.assertEqual([row.agent_name for row in filter_rows(self.rows, agent="BERG")], ["Anna Berg"])
        self.assertEqual(len(filter_rows(self.rows, project="solar")), 2)

    def test_filters_combine(self):
        self.assertEqual(filter_rows(self.rows, agent="ben", project="solar"), [])

    def test_no_filter_keeps_everything(self):
        self.assertEqual(filter_rows(self.rows), self.rows)


class FrameTests(unittest.TestCase):
    def setUp(self):
        self.rows = [
            make_row("Solar", "Anna", soll=10, days={1: 4, 2: "K", 3: 4}),
            make_row("Solar", "Ben", soll=10, days={1: 3}),
            make_row("Glasfaser", "Cem", soll=0, days={1: 2}),
            make_row("Glasfaser", "Dana", days={5: 1}),
        ]

    def test_rows_to_frame_columns_and_daily_display(self):
        frame = rows_to_frame(self.rows)
        self.assertEqual(len(frame), 4)
        self.assertEqual(list(frame.columns[:3]), ["sheet", "projectName", "agentName"])
        self.assertEqual(list(frame.columns[-31:]), [str(day) for day in range(1, 32)])
        self.assertEqual(frame.loc[0, "1"], 4.0)
        self.assertEqual(frame.loc[0, "2"], "K")
        self.assertIsNone(frame.loc[0, "4"])
        self.assertEqual(frame.loc[0, "attainmentPct"], 80.0)

    def test_project_totals(self):
        totals = project_totals(self.rows).set_index("projectName")

        self.assertEqual(list(totals.index), ["Glasfaser", "Solar"])
        self.assertEqual(totals.loc["Solar", "agents"], 2)
        self.assertEqual(totals.loc["Solar", "targetSoll"], 20.0)
        self.assertEqual(totals.loc["Solar", "achievedSum"], 11.0)
        self.assertAlmostEqual(totals.loc["Solar", "attainmentPct"], 55.0)
        self.assertEqual(totals.loc["Glasfaser", "targetSoll"], 0.0)
        self.assertTrue(math.isnan(totals.loc["Glasfaser", "attainmentPct"]))

    def test_empty_inputs(self):
        self.assertTrue(project_totals([]).empty)
        self.assertTrue(rows_to_frame([]).empty)
        self.assertEqual(rows_to_json([]), [])

    def test_rows_to_json(self):
        payload = rows_to_json(self.rows[:1])
        self.assertEqual(payload[0]["achievedSum"], 8.0)
        self.assertEqual(payload[0]["daily"][1], {"day": 2, "code": "K"})


if __name__ == "__main__":
    unittest.main()
