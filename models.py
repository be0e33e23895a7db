from dataclasses import dataclass, replace
from typing import Optional

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


@dataclass(frozen=True)
class TransactionRecord:
    id: Optional[int]  # assigned by the store on append
    bill_number: Optional[str]
    student_name: str
    class_name: str
    amount: int
    date: str
    timestamp: int  # epoch milliseconds

    def with_id(self, record_id: int) -> "TransactionRecord":
        return replace(self, id=record_id)

    def to_dict(self):
        return {
            'id': self.id,
            'bill_number': self.bill_number,
            'student_name': self.student_name,
            'class_name': self.class_name,
            'amount': self.amount,
            'date': self.date,
            'timestamp': self.timestamp,
        }


class Transaction(db.Model):
    __tablename__ = 'transactions'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    bill_number = db.Column(db.String(20), nullable=True)
    student_name = db.Column(db.String(100), nullable=False)
    class_name = db.Column(db.String(100), nullable=False)
    amount = db.Column(db.Integer, nullable=False)
    date = db.Column(db.String(32), nullable=False)
    timestamp = db.Column(db.BigInteger, nullable=False, index=True)

    __table_args__ = (
        db.UniqueConstraint('bill_number', name='uq_transaction_bill_number'),
    )

    def to_record(self) -> TransactionRecord:
        return TransactionRecord(
            id=self.id,
            bill_number=self.bill_number,
            student_name=self.student_name,
            class_name=self.class_name,
            amount=self.amount,
            date=self.date,
            timestamp=self.timestamp,
        )

    @classmethod
    def from_record(cls, record: TransactionRecord) -> "Transaction":
        return cls(
            bill_number=record.bill_number,
            student_name=record.student_name,
            class_name=record.class_name,
            amount=record.amount,
            date=record.date,
            timestamp=record.timestamp,
        )
