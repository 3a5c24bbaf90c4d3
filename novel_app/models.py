from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from .extensions import db


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=True, index=True)
    display_name = db.Column(db.String(120), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    wallet = db.relationship(
        "Wallet", backref="owner", uselist=False, lazy=True, cascade="all, delete-orphan"
    )
    characters = db.relationship(
        "Character",
        backref="owner",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="Character.name",
    )
    scenarios = db.relationship(
        "Scenario",
        backref="owner",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="Scenario.title",
    )
    stories = db.relationship(
        "Story",
        backref="owner",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="Story.updated_at.desc()",
    )

    def __repr__(self) -> str:  # pragma: no cover - repr for debugging
        return f"<User {self.display_name}>"


class Wallet(db.Model):
    __tablename__ = "wallets"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), unique=True, nullable=False, index=True)
    balance = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.CheckConstraint("balance >= 0", name="ck_wallet_balance_non_negative"),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Wallet user={self.user_id} balance={self.balance}>"


class Character(db.Model):
    __tablename__ = "characters"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    personality_tags = db.Column(db.JSON, nullable=False, default=list)
    dialogue_style = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Character {self.name}>"

    @property
    def tags_list(self) -> list[str]:
        if not self.personality_tags:
            return []
        return [str(tag).strip() for tag in self.personality_tags if str(tag).strip()]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "description": self.description or "",
            "personality_tags": self.tags_list,
            "dialogue_style": self.dialogue_style or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Scenario(db.Model):
    __tablename__ = "scenarios"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    title = db.Column(db.String(150), nullable=False)
    setting_text = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Scenario {self.title}>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "setting_text": self.setting_text,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Story(db.Model):
    __tablename__ = "stories"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    summary = db.Column(db.Text, nullable=True)
    plot_notes = db.Column(db.Text, nullable=True)
    genre = db.Column(db.String(120), nullable=True)
    relationship_desc = db.Column(db.Text, nullable=True)
    total_episodes = db.Column(db.Integer, nullable=False, default=20)
    next_options = db.Column(db.JSON, nullable=False, default=list)
    character_context = db.Column(db.Text, nullable=True)
    scenario_context = db.Column(db.Text, nullable=True)
    is_public = db.Column(db.Boolean, nullable=False, default=False)
    is_finished = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    contents = db.relationship(
        "StoryContent",
        backref="story",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="StoryContent.order_index",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Story {self.title} ({len(self.contents)} episodes)>"

    @property
    def next_options_list(self) -> list[str]:
        if not self.next_options:
            return []
        return [str(option) for option in self.next_options if str(option).strip()]

    def to_dict(self, *, include_contents: bool = False) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "summary": self.summary or "",
            "plot_notes": self.plot_notes or "",
            "genre": self.genre or "",
            "total_episodes": self.total_episodes,
            "next_options": self.next_options_list,
            "is_public": self.is_public,
            "is_finished": self.is_finished,
            "episode_count": len(self.contents),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_contents:
            payload["contents"] = [content.to_dict() for content in self.contents]
        return payload


class StoryContent(db.Model):
    __tablename__ = "story_contents"

    id = db.Column(db.Integer, primary_key=True)
    story_id = db.Column(db.Integer, db.ForeignKey("stories.id"), nullable=False, index=True)
    order_index = db.Column(db.Integer, nullable=False)
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("story_id", "order_index", name="uq_story_content_order"),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<StoryContent {self.order_index} of story {self.story_id}>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "order_index": self.order_index,
            "content": self.content,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
