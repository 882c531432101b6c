from django.db import transaction
from django.db.models.signals import post_delete, post_save, pre_save
from django.dispatch import receiver

from apps.core import features
from .models import Company, Order, OrderLineItem


@receiver(pre_save, sender=Company)
def track_website_change(sender, instance, **kwargs):
    if instance.pk:
        old_website = Company.all_objects.filter(pk=instance.pk).values_list('website', flat=True).first()
        instance._website_changed = old_website != instance.website
    else:
        instance._website_changed = bool(instance.website)


@receiver(post_save, sender=Company)
def queue_favicon_fetch(sender, instance, created, **kwargs):
    if not instance.website or not getattr(instance, '_website_changed', False):
        return
    if not features.is_enabled('favicon_fetching', instance.team):
        return

    from .tasks import fetch_company_favicon
    transaction.on_commit(lambda: fetch_company_favicon.delay(instance.pk))


@receiver(post_save, sender=OrderLineItem)
@receiver(post_delete, sender=OrderLineItem)
def sync_order_totals(sender, instance, **kwargs):
    order = Order.all_objects.filter(pk=instance.order_id).first()
    if order is not None:
        order.sync_financials()
