from django.contrib import admin

from .models import Amendment, Contract, Deliverable, Milestone, Signature


class MilestoneInline(admin.TabularInline):
    model = Milestone
    extra = 0
    fields = ('position', 'title', 'amount', 'due_date', 'status')
    readonly_fields = ('status',)


class SignatureInline(admin.TabularInline):
    model = Signature
    extra = 0
    readonly_fields = ('signed_by', 'signed_at', 'ip_address', 'user_agent', 'signature_hash')


@admin.register(Contract)
class ContractAdmin(admin.ModelAdmin):
    list_display = ('id', 'title', 'client', 'freelancer', 'total_amount', 'currency', 'status', 'version', 'created_at')
    list_filter = ('status', 'source_type', 'currency')
    search_fields = ('title', 'proposal_ref', 'client__email', 'freelancer__email')
    readonly_fields = ('version', 'created_at', 'updated_at')
    inlines = [MilestoneInline, SignatureInline]


@admin.register(Milestone)
class MilestoneAdmin(admin.ModelAdmin):
    list_display = ('id', 'contract', 'position', 'title', 'amount', 'due_date', 'status')
    list_filter = ('status',)
    search_fields = ('title', 'contract__title')


@admin.register(Deliverable)
class DeliverableAdmin(admin.ModelAdmin):
    list_display = ('id', 'milestone', 'title', 'deliverable_type', 'status', 'submitted_at')
    list_filter = ('deliverable_type', 'status')


@admin.register(Amendment)
class AmendmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'contract', 'amendment_type', 'status', 'proposed_by', 'proposed_at', 'responded_at')
    list_filter = ('amendment_type', 'status')
    search_fields = ('contract__title', 'description')
