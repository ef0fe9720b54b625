# app/models/question.py
from sqlalchemy import Column, String, Text, Integer, Boolean, DateTime, JSON, ForeignKey
from app.db.base import Base, utcnow, new_id

class Question(Base):
    __tablename__ = "questions"

    id = Column(String(36), primary_key=True, default=new_id)
    category = Column(String(50), nullable=False)
    text = Column(Text, nullable=False)
    options = Column(JSON, nullable=False)  # ["A", "B", "C", "D"]
    active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


# 정답은 별도 테이블: 문제 발급 쿼리가 정답 컬럼을 읽을 일이 없도록 분리
class QuestionAnswerKey(Base):
    __tablename__ = "question_answer_keys"

    question_id = Column(String(36), ForeignKey("questions.id"), primary_key=True)
    correct_index = Column(Integer, nullable=False)  # 0..3
