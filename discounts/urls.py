from django.urls import path
from .views import *

urlpatterns = [
    path('', getDiscounts, name='getDiscounts'),
    path('create/', createDiscount, name='createDiscount'),
    path('update/<int:id>/', updateDiscount, name='updateDiscount'),
    path('delete/<int:id>/', deleteDiscount, name='deleteDiscount'),
    path('validate/', validateDiscount, name='validateDiscount'),
    path('apply/', applyDiscount, name='applyDiscount'),
    path('automatic/', getAutomaticDiscounts, name='automaticDiscounts'),
    path('usage/', discountUsage, name='discountUsage'),
]
