from rest_framework import serializers

from apps.core.crm_config import CrmConfig
from apps.crm.models import Opportunity
from .models import Lead


class WebLeadSerializer(serializers.Serializer):
    """Public web-to-lead form"""

    first_name = serializers.CharField(max_length=100)
    last_name = serializers.CharField(max_length=100)
    email = serializers.EmailField()
    phone = serializers.CharField(max_length=40, required=False, allow_blank=True)
    company = serializers.CharField(max_length=200, required=False, allow_blank=True)
    job_title = serializers.CharField(max_length=100, required=False, allow_blank=True)
    source = serializers.CharField(max_length=50, required=False, allow_blank=True)
    campaign = serializers.CharField(max_length=100, required=False, allow_blank=True)
    message = serializers.CharField(required=False, allow_blank=True)
    consent_marketing = serializers.BooleanField(required=False, default=False)
    consent_data_processing = serializers.BooleanField()
    team = serializers.SlugField(required=False, help_text='Team slug, for anonymous submissions')

    def validate_consent_data_processing(self, value):
        if not value:
            raise serializers.ValidationError('Consent to data processing is required.')
        return value

    def create(self, validated_data):
        data = dict(validated_data)
        data.pop('team', None)

        return Lead.objects.create(
            team=self.context['team'],
            first_name=data['first_name'],
            last_name=data['last_name'],
            email=data['email'],
            phone=data.get('phone', ''),
            company_name=data.get('company', ''),
            job_title=data.get('job_title', ''),
            source=data.get('source') or CrmConfig.lead_defaults()['source'],
            campaign=data.get('campaign', ''),
            message=data.get('message', ''),
            consent_marketing=data['consent_marketing'],
            consent_data_processing=data['consent_data_processing'],
            web_form_payload=data,
        )


class LeadConversionSerializer(serializers.Serializer):

    company_id = serializers.IntegerField(required=False)
    new_company_name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    create_contact = serializers.BooleanField(required=False, default=False)
    contact_name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    contact_email = serializers.EmailField(required=False, allow_blank=True)
    contact_phone = serializers.CharField(max_length=30, required=False, allow_blank=True)
    create_opportunity = serializers.BooleanField(required=False, default=True)
    opportunity_name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    amount = serializers.DecimalField(max_digits=15, decimal_places=2, required=False)
    probability = serializers.IntegerField(min_value=0, max_value=100, required=False)
    close_date = serializers.DateField(required=False)
    # Closed stages go through Opportunity.mark_won / mark_lost
    stage = serializers.ChoiceField(
        choices=[choice for choice in Opportunity.STAGE_CHOICES if choice[0] not in Opportunity.CLOSED_STAGES],
        required=False,
    )
