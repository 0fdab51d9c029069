# forms.py
from django import forms
from django.core.validators import RegexValidator

from .models import Profile
from .types import PRIVACY_FIELDS, to_camel

# Handles that would clash with routes or impersonate staff
RESERVED_USERNAMES = frozenset([
    'admin', 'administrator', 'settings', 'discover', 'dashboard', 'api',
    'auth', 'login', 'logout', 'signup', 'register', 'profile', 'user',
    'users', 'account', 'help', 'support', 'about', 'terms', 'privacy',
    'spotify', 'mirror', 'spotifymirror', 'official', 'mod', 'moderator',
    'staff', 'team', 'null', 'undefined', 'root', 'system', 'follow',
    'followers', 'following',
])

username_validator = RegexValidator(
    r'^[a-zA-Z0-9_]{3,20}$',
    'Username must be 3-20 characters and contain only letters, numbers, and underscores',
    code='invalid',
)


class SettingsForm(forms.Form):
    """Validates a partial settings update (the JSON body of a PATCH).

    Only keys present in ``data`` are applied by ``apply()``; a missing key
    leaves the stored value alone, ``"username": null`` clears the handle.
    """
    username = forms.CharField(required=False, empty_value=None, max_length=20, validators=[username_validator])
    bio = forms.CharField(required=False, empty_value=None, max_length=160,
                          error_messages={'max_length': 'Bio must be 160 characters or less'})
    profileVisibility = forms.ChoiceField(required=False, choices=Profile.VISIBILITY_CHOICES,
                                          error_messages={'invalid_choice': 'Invalid profile visibility'})

    def __init__(self, data, profile):
        self.raw = data if isinstance(data, dict) else {}
        self.profile = profile
        super().__init__(data=self.raw)

    def clean_username(self):
        username = self.cleaned_data.get('username')
        if username is None:
            return None
        username = username.lower()
        if username in RESERVED_USERNAMES:
            raise forms.ValidationError('This username is reserved and cannot be used', code='reserved')
        taken = Profile.objects.filter(username=username).exclude(pk=self.profile.pk).exists()
        if taken:
            raise forms.ValidationError('Username is already taken', code='taken')
        return username

    def clean_profileVisibility(self):
        visibility = self.cleaned_data.get('profileVisibility')
        if 'profileVisibility' in self.raw and not visibility:
            raise forms.ValidationError('Invalid profile visibility', code='invalid_choice')
        return visibility

    def first_error(self):
        for error_list in self.errors.values():
            return error_list[0]
        return None

    def error_status(self):
        return 409 if self.has_error('username', code='taken') else 400

    def apply(self):
        profile = self.profile
        update_fields = []
        if 'username' in self.raw:
            profile.username = self.cleaned_data['username']
            update_fields.append('username')
        if 'bio' in self.raw:
            profile.bio = self.cleaned_data['bio']
            update_fields.append('bio')
        if 'profileVisibility' in self.raw:
            profile.profile_visibility = self.cleaned_data['profileVisibility']
            update_fields.append('profile_visibility')
        if 'hasCompletedOnboarding' in self.raw:
            profile.has_completed_onboarding = bool(self.raw['hasCompletedOnboarding'])
            update_fields.append('has_completed_onboarding')

        privacy = self.raw.get('privacy')
        if isinstance(privacy, dict):
            for name in PRIVACY_FIELDS:
                # non-boolean values are ignored rather than coerced
                value = privacy.get(to_camel(name))
                if isinstance(value, bool):
                    setattr(profile, name, value)
                    update_fields.append(name)

        if update_fields:
            profile.save(update_fields=update_fields)
        return profile


def settings_payload(profile):
    return {
        'username': profile.username,
        'bio': profile.bio,
        'profileVisibility': profile.profile_visibility,
        'hasCompletedOnboarding': profile.has_completed_onboarding,
        'privacy': {to_camel(name): value for name, value in profile.privacy_dict().items()},
    }
