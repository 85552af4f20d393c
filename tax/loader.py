"""
Tax tables loader for importing/exporting tax data from JSON/CSV files.
"""
import csv
import json
import logging
import math
import os
from functools import lru_cache
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .models import (
    CPPEIData, FederalTaxData, HealthPremiumBand, ProvincialTaxData, SurtaxTier,
    TaxBracket, TaxTableSet
)

logger = logging.getLogger(__name__)

DEFAULT_TAX_YEAR = 2026
PACKAGED_DATA_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data")


class TaxTableLoader:
    """Loader for tax table data from various sources."""

    def __init__(self, data_dir: Optional[str] = None):
        """
        Initialize the loader.

        Args:
            data_dir: Directory containing tax table data files
        """
        self.data_dir = os.path.abspath(data_dir or PACKAGED_DATA_DIR)

    def load_from_json(self, filepath: str) -> TaxTableSet:
        """
        Load tax tables from a JSON file.

        Args:
            filepath: Path to JSON file

        Returns:
            TaxTableSet parsed from JSON
        """
        with open(filepath, 'r', encoding='utf-8') as f:
            data = json.load(f)

        logger.info(f"Loaded tax tables for {data.get('year')} from {filepath}")
        return self._parse_json_data(data)

    def load_year(self, year: int) -> Optional[TaxTableSet]:
        """
        Load tax tables for a specific year from the data directory.

        Args:
            year: Tax year to load

        Returns:
            TaxTableSet if found, None otherwise
        """
        json_path = os.path.join(self.data_dir, f"tax_tables_{year}.json")
        if os.path.exists(json_path):
            return self.load_from_json(json_path)

        logger.warning(f"No tax table file found for year {year} in {self.data_dir}")
        return None

    def export_to_json(self, tax_tables: TaxTableSet, filepath: str) -> None:
        """
        Export tax tables to a JSON file.

        Args:
            tax_tables: TaxTableSet to export
            filepath: Path to save JSON file
        """
        data = self._serialize_to_dict(tax_tables)

        directory = os.path.dirname(filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    def import_brackets_from_csv(self, filepath: str) -> List[TaxBracket]:
        """
        Import a bracket table from a CSV file.

        CSV format expected:
        upper_bound,rate

        A blank upper_bound marks the open-ended top bracket.

        Args:
            filepath: Path to CSV file

        Returns:
            Brackets sorted by upper bound
        """
        brackets = []

        with open(filepath, 'r', encoding='utf-8', newline='') as f:
            reader = csv.DictReader(f)
            for row in reader:
                upper_bound = (row.get('upper_bound') or '').strip()
                brackets.append(TaxBracket(
                    upper_bound=float(upper_bound) if upper_bound else None,
                    rate=float(row['rate'])
                ))

        brackets.sort(key=lambda b: b.upper_bound)
        return brackets

    def validate_tax_tables(self, tax_tables: TaxTableSet) -> List[str]:
        """
        Validate tax tables for consistency and completeness.

        Args:
            tax_tables: TaxTableSet to validate

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        for name, part in [
            ("Federal", tax_tables.federal),
            ("Provincial", tax_tables.provincial),
            ("CPP/EI", tax_tables.cpp_ei),
        ]:
            if part.year != tax_tables.year:
                errors.append(f"{name} year {part.year} doesn't match set year {tax_tables.year}")

        for jurisdiction, data in [("federal", tax_tables.federal), (tax_tables.provincial.jurisdiction, tax_tables.provincial)]:
            rates = [b.rate for b in data.brackets]
            if rates != sorted(rates):
                errors.append(f"Marginal rates decrease between brackets for {jurisdiction}")

        federal = tax_tables.federal
        if federal.bpa_phaseout_start < federal.brackets[0].upper_bound:
            errors.append("Federal BPA phase-out starts inside the lowest bracket")

        premiums = [band.base_amount for band in tax_tables.provincial.health_premium_bands]
        if premiums != sorted(premiums):
            errors.append("Health premium bands are not monotonic")

        cpp_data = tax_tables.cpp_ei
        if cpp_data.cpp_second_rate > cpp_data.cpp_rate:
            errors.append(f"Second CPP rate {cpp_data.cpp_second_rate} exceeds first rate {cpp_data.cpp_rate}")

        return errors

    def _parse_json_data(self, data: Dict[str, Any]) -> TaxTableSet:
        """Parse JSON data into TaxTableSet."""
        year = data["year"]
        federal = data["federal"]
        provincial = data["provincial"]

        federal_data = FederalTaxData(
            year=year,
            brackets=self._parse_brackets(federal["brackets"]),
            basic_personal_amount=federal["basic_personal_amount"],
            basic_personal_amount_min=federal["basic_personal_amount_min"],
            bpa_phaseout_start=federal["bpa_phaseout_start"],
            bpa_phaseout_end=federal["bpa_phaseout_end"],
            metadata=federal.get("metadata", {})
        )

        provincial_data = ProvincialTaxData(
            year=year,
            jurisdiction=provincial["jurisdiction"],
            brackets=self._parse_brackets(provincial["brackets"]),
            basic_personal_amount=provincial["basic_personal_amount"],
            surtax_tiers=[
                SurtaxTier(threshold=t["threshold"], rate=t["rate"])
                for t in provincial.get("surtax_tiers", [])
            ],
            health_premium_bands=[
                HealthPremiumBand(
                    upper_bound=b["upper_bound"],
                    base_amount=b["base_amount"],
                    rate=b.get("rate", 0.0),
                    max_increase=b.get("max_increase", 0.0)
                )
                for b in provincial["health_premium_bands"]
            ],
            tax_reduction_base=provincial.get("tax_reduction_base", 0.0),
            metadata=provincial.get("metadata", {})
        )

        return TaxTableSet(
            year=year,
            federal=federal_data,
            provincial=provincial_data,
            cpp_ei=self._parse_cpp_ei_data(data["cpp_ei"], year),
            metadata=data.get("metadata", {})
        )

    def _parse_brackets(self, data: List[Dict[str, Any]]) -> List[TaxBracket]:
        return [TaxBracket(upper_bound=b["upper_bound"], rate=b["rate"]) for b in data]

    def _parse_cpp_ei_data(self, data: Dict[str, Any], year: int) -> CPPEIData:
        """Parse CPP/EI data from JSON."""
        return CPPEIData(
            year=year,
            cpp_basic_exemption=data["cpp_basic_exemption"],
            cpp_ympe=data["cpp_ympe"],
            cpp_yampe=data["cpp_yampe"],
            cpp_rate=data["cpp_rate"],
            cpp_second_rate=data["cpp_second_rate"],
            ei_rate=data["ei_rate"],
            ei_mie=data["ei_mie"]
        )

    def _serialize_to_dict(self, tax_tables: TaxTableSet) -> Dict[str, Any]:
        """Serialize TaxTableSet to dictionary for JSON export."""
        federal = tax_tables.federal
        provincial = tax_tables.provincial
        cpp_ei = tax_tables.cpp_ei

        return {
            "year": tax_tables.year,
            "federal": {
                "brackets": self._serialize_brackets(federal.brackets),
                "basic_personal_amount": federal.basic_personal_amount,
                "basic_personal_amount_min": federal.basic_personal_amount_min,
                "bpa_phaseout_start": federal.bpa_phaseout_start,
                "bpa_phaseout_end": federal.bpa_phaseout_end,
                "metadata": federal.metadata
            },
            "provincial": {
                "jurisdiction": provincial.jurisdiction,
                "brackets": self._serialize_brackets(provincial.brackets),
                "basic_personal_amount": provincial.basic_personal_amount,
                "surtax_tiers": [
                    {"threshold": t.threshold, "rate": t.rate}
                    for t in provincial.surtax_tiers
                ],
                "health_premium_bands": [
                    {
                        "upper_bound": _bound_to_json(b.upper_bound),
                        "base_amount": b.base_amount,
                        "rate": b.rate,
                        "max_increase": b.max_increase
                    }
                    for b in provincial.health_premium_bands
                ],
                "tax_reduction_base": provincial.tax_reduction_base,
                "metadata": provincial.metadata
            },
            "cpp_ei": {
                "cpp_basic_exemption": cpp_ei.cpp_basic_exemption,
                "cpp_ympe": cpp_ei.cpp_ympe,
                "cpp_yampe": cpp_ei.cpp_yampe,
                "cpp_rate": cpp_ei.cpp_rate,
                "cpp_second_rate": cpp_ei.cpp_second_rate,
                "ei_rate": cpp_ei.ei_rate,
                "ei_mie": cpp_ei.ei_mie
            },
            "metadata": tax_tables.metadata
        }

    def _serialize_brackets(self, brackets: List[TaxBracket]) -> List[Dict[str, Any]]:
        return [{"upper_bound": _bound_to_json(b.upper_bound), "rate": b.rate} for b in brackets]


def _bound_to_json(bound: float) -> Optional[float]:
    # JSON has no infinity; null marks the open-ended top band
    return None if math.isinf(bound) else bound


@lru_cache(maxsize=None)
def get_tax_tables(year: Optional[int] = None) -> TaxTableSet:
    """
    Tax tables for a year, read once per process and shared read-only.

    TAX_TABLES_DIR overrides the packaged data directory and TAX_YEAR the
    default year; both may come from a .env file.
    """
    load_dotenv()
    if year is None:
        year = int(os.getenv("TAX_YEAR", DEFAULT_TAX_YEAR))

    loader = TaxTableLoader(os.getenv("TAX_TABLES_DIR"))
    tax_tables = loader.load_year(year)
    if tax_tables is None:
        raise ValueError(f"No tax tables found for year {year} in {loader.data_dir}")
    return tax_tables
