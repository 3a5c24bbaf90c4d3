from flask_wtf import FlaskForm
from wtforms import Field, StringField, TextAreaField
from wtforms.validators import InputRequired, Length, Optional


class TagListField(Field):
    """Accepts either a JSON list of tags or a single comma separated string."""

    def _value(self) -> str:
        return ", ".join(self.data or [])

    def process_formdata(self, valuelist):
        tags: list[str] = []
        for raw in valuelist:
            for tag in str(raw).split(","):
                cleaned = tag.strip()
                if cleaned and cleaned not in tags:
                    tags.append(cleaned)
        self.data = tags


class CharacterForm(FlaskForm):
    class Meta:
        csrf = False

    name = StringField("Name", validators=[InputRequired(), Length(max=120)])
    description = TextAreaField("Description", validators=[Optional(), Length(max=4000)])
    personality_tags = TagListField("Personality tags", default=list)
    dialogue_style = TextAreaField("Dialogue style", validators=[Optional(), Length(max=1000)])


class ScenarioForm(FlaskForm):
    class Meta:
        csrf = False

    title = StringField("Title", validators=[InputRequired(), Length(max=150)])
    setting_text = TextAreaField("Setting", validators=[InputRequired(), Length(max=8000)])
