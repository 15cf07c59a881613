"""Request payload forms.

Flask-WTF binds these to the JSON body of POST/PUT/PATCH requests; field
names therefore follow the API's camelCase keys.
"""
from flask import abort
from flask_wtf import FlaskForm
from wtforms import Field, PasswordField, StringField, TextAreaField
from wtforms.validators import AnyOf, DataRequired, Email, Length, Optional
from wtforms.widgets import TextInput

from models import NOTIFICATION_TYPES, Role, normalize_tags


class TagListField(Field):
    """Accepts a JSON list of tags (or a comma-separated string)."""
    widget = TextInput()

    def _value(self):
        return ', '.join(self.data or [])

    def process_formdata(self, valuelist):
        self.data = normalize_tags(valuelist) if valuelist else None


def validate_or_400(form):
    """Validate ``form`` or abort with the first error message."""
    if not form.validate():
        for field_name, errors in form.errors.items():
            if errors:
                abort(400, description=errors[0])
        abort(400, description='Invalid request')
    return form


class RegistrationForm(FlaskForm):
    username = StringField('Username', validators=[DataRequired('Username is required'), Length(min=3, max=30)])
    email = StringField('Email', validators=[DataRequired('Email is required'), Email('Invalid email address')])
    password = PasswordField('Password', validators=[DataRequired('Password is required'), Length(min=6, max=128)])
    role = StringField('Role', validators=[Optional(), AnyOf([Role.USER.value, Role.GUEST.value],
                                                               message='Invalid role. Must be "user" or "guest"')])


class GuestRegistrationForm(FlaskForm):
    username = StringField('Username', validators=[DataRequired('Username is required'), Length(min=3, max=30)])


class LoginForm(FlaskForm):
    email = StringField('Email', validators=[DataRequired('Email is required')])
    password = PasswordField('Password', validators=[DataRequired('Password is required')])


class ProfileForm(FlaskForm):
    username = StringField('Username', validators=[Optional(), Length(min=3, max=30)])
    email = StringField('Email', validators=[Optional(), Email('Invalid email address')])
    avatar = StringField('Avatar', validators=[Optional(), Length(max=500)])
    bio = TextAreaField('About Me (Bio)', validators=[Optional(), Length(max=500)])


class UpgradeGuestForm(FlaskForm):
    email = StringField('Email', validators=[DataRequired('Email and password are required'),
                                             Email('Invalid email address')])
    password = PasswordField('Password', validators=[DataRequired('Email and password are required'),
                                                     Length(min=6, max=128)])


class RoleForm(FlaskForm):
    role = StringField('Role', validators=[DataRequired('Role is required'),
                                           AnyOf([r.value for r in Role], message='Invalid role')])


class QuestionForm(FlaskForm):
    title = StringField('Title', validators=[DataRequired('Title and description are required'), Length(max=300)])
    description = TextAreaField('Description', validators=[DataRequired('Title and description are required')])
    tags = TagListField('Tags')


class QuestionUpdateForm(FlaskForm):
    title = StringField('Title', validators=[Optional(), Length(max=300)])
    description = TextAreaField('Description', validators=[Optional()])
    tags = TagListField('Tags')


class AnswerForm(FlaskForm):
    content = TextAreaField('Your Answer', validators=[DataRequired('Content and questionId are required')])
    questionId = StringField('Question', validators=[DataRequired('Content and questionId are required')])


class AnswerUpdateForm(FlaskForm):
    content = TextAreaField('Your Answer', validators=[DataRequired('Content is required')])


class NotificationForm(FlaskForm):
    userId = StringField('Target user', validators=[Optional()])
    title = StringField('Title', validators=[DataRequired('Title, message, and type are required'), Length(max=200)])
    message = TextAreaField('Message', validators=[DataRequired('Title, message, and type are required'),
                                                   Length(max=1000)])
    discountCode = StringField('Discount code', validators=[Optional(), Length(max=50)])
    type = StringField('Type', validators=[DataRequired('Title, message, and type are required'),
                                           AnyOf(NOTIFICATION_TYPES, message='Invalid notification type')])


class NotificationUpdateForm(FlaskForm):
    title = StringField('Title', validators=[Optional(), Length(max=200)])
    message = TextAreaField('Message', validators=[Optional(), Length(max=1000)])
    discountCode = StringField('Discount code', validators=[Optional(), Length(max=50)])
    type = StringField('Type', validators=[Optional(), AnyOf(NOTIFICATION_TYPES, message='Invalid notification type')])


class ChatForm(FlaskForm):
    title = StringField('Title', validators=[Optional(), Length(max=100)])


class ChatMessageForm(FlaskForm):
    message = TextAreaField('Message', validators=[DataRequired('Message is required'), Length(max=4000)])
