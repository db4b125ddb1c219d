from django.contrib import admin
from .models import Patient, Service, StaffMember, StaffSchedule, Room, Package, PackageItem, Payment, Appointment

@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ['id', 'first_name', 'last_name', 'is_active']
    search_fields = ['first_name', 'last_name']

@admin.register(Service)
class ServiceAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'category', 'duration_minutes', 'unit_price_cents', 'sessions_per_instance', 'is_active']
    list_filter = ['category', 'is_active']

class StaffScheduleInline(admin.TabularInline):
    model = StaffSchedule
    extra = 0

@admin.register(StaffMember)
class StaffMemberAdmin(admin.ModelAdmin):
    list_display = ['id', 'first_name', 'last_name', 'specialization', 'is_active']
    list_filter = ['specialization', 'is_active']
    inlines = [StaffScheduleInline]

@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'capacity', 'is_active']

class PackageItemInline(admin.TabularInline):
    model = PackageItem
    extra = 0
    readonly_fields = ['completed_count']

@admin.register(Package)
class PackageAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'patient', 'final_price_cents', 'payment_status', 'status']
    list_filter = ['status', 'payment_status']
    readonly_fields = ['payment_status']
    inlines = [PackageItemInline]

@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['id', 'package', 'amount_cents', 'method', 'status', 'created_at']
    list_filter = ['method', 'status']

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ['id', 'date', 'start_time', 'end_time', 'staff', 'room', 'status']
    list_filter = ['status', 'date']
