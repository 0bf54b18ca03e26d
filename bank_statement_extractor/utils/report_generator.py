"""
Report Generator
Writes extracted transactions to CSV and job results to JSON
"""

import logging
import json
import csv
from decimal import Decimal
from pathlib import Path
from typing import Sequence
from datetime import datetime

from ..models.extraction_result import ExtractionJobResult
from ..models.transaction import Transaction

logger = logging.getLogger(__name__)


class ReportGenerator:
    """
    Report Generator: Creates output files

    Outputs:
    1. CSV with one row per transaction plus a totals block
    2. JSON job report (transactions, pages, validation, security counts, logs)
    """

    def __init__(self, output_dir: str = './output'):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def _stamp(self) -> str:
        return datetime.now().strftime('%Y%m%d_%H%M%S')

    def generate_csv(self, transactions: Sequence[Transaction], document_id: str,
                     filename: str = None) -> str:
        """
        Generate CSV file from transactions

        Returns:
            Path to generated CSV file
        """
        if filename is None:
            filename = f"{document_id}_{self._stamp()}.csv"

        output_path = self.output_dir / filename

        with open(output_path, 'w', newline='', encoding='utf-8') as f:
            writer = csv.writer(f)

            writer.writerow([
                'Transaction Date',
                'Description',
                'Amount',
                'Type',
                'Category',
                'Balance',
                'Confidence',
            ])

            for txn in transactions:
                writer.writerow([
                    txn.transaction_date.isoformat(),
                    txn.description,
                    str(txn.amount),
                    txn.transaction_type,
                    txn.category,
                    str(txn.balance) if txn.balance is not None else '',
                    f'{txn.confidence:.2f}' if txn.confidence is not None else '',
                ])

            total_credits = sum((t.amount for t in transactions if t.amount > 0), Decimal('0'))
            total_debits = sum((-t.amount for t in transactions if t.amount < 0), Decimal('0'))

            writer.writerow([])
            writer.writerow(['Summary'])
            writer.writerow(['Transactions', len(transactions)])
            writer.writerow(['Total Credits', str(total_credits)])
            writer.writerow(['Total Debits', str(total_debits)])

        logger.info(f"CSV file generated: {output_path}")
        return str(output_path)

    def generate_job_report(self, result: ExtractionJobResult, document_id: str,
                            filename: str = None) -> str:
        """
        Generate JSON report of a complete extraction job

        Returns:
            Path to generated report file
        """
        if filename is None:
            filename = f"{document_id}_job_report_{self._stamp()}.json"

        output_path = self.output_dir / filename

        report_data = {
            'document_id': document_id,
            'generated_at': datetime.now().isoformat(),
            **result.to_dict(),
        }

        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(report_data, f, indent=2, ensure_ascii=False)

        logger.info(f"Job report generated: {output_path}")
        return str(output_path)
