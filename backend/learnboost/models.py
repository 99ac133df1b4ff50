from __future__ import annotations
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Text
from .db import Base


class KnowledgeTest(Base):
	__tablename__ = "knowledge_tests"
	id = Column(String(64), primary_key=True, index=True)
	name = Column(String(256), nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
	source_text = Column(Text, nullable=False)
	# Denormalized so listing never has to decode questions_json
	question_count = Column(Integer, default=0, nullable=False)
	questions_json = Column(Text, nullable=False, default="[]")  # fixed after creation
	results_json = Column(Text, nullable=False, default="[]")  # append-only submissions
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
