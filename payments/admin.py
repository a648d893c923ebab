from django.contrib import admin
from .models import Payment, RefundStatusChange


class RefundStatusChangeInline(admin.TabularInline):
    model = RefundStatusChange
    extra = 0
    can_delete = False
    readonly_fields = ('old_status', 'new_status', 'changed_by', 'notes', 'created_at')

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ('transaction_id', 'booking', 'user', 'amount', 'status', 'created_at')
    list_filter = ('status', 'payment_method')
    search_fields = ('transaction_id', 'user__email')
    # status only moves through PaymentService so the history stays complete
    readonly_fields = ('status',)
    inlines = [RefundStatusChangeInline]
