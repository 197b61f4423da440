from django.urls import path
from . import views

app_name = "gatepass"

urlpatterns = [

    # =========================================================================
    # SYSTEM / HEALTH
    # =========================================================================
    path("health/",                         views.health_check,              name="health-check"),

    # =========================================================================
    # AUTHENTICATION
    # =========================================================================
    path("auth/login/",                     views.login_view,                name="auth-login"),
    path("auth/oidc/login/",                views.oidc_login_view,           name="auth-oidc-login"),
    path("auth/oidc/callback/",             views.oidc_callback_view,        name="auth-oidc-callback"),
    path("auth/logout/",                    views.logout_view,               name="auth-logout"),
    path("auth/me/",                        views.me_view,                   name="auth-me"),
    path("auth/role/",                      views.set_role_view,             name="auth-role"),

    # =========================================================================
    # ACCESS CREDENTIALS
    # =========================================================================
    path("credentials/",                    views.credential_list_create,    name="credential-list"),
    path("credentials/all/",                views.credential_list_all,       name="credential-list-all"),
    path("credentials/validate/",           views.credential_validate,       name="credential-validate"),

    # =========================================================================
    # ACCESS EVENTS / DASHBOARD
    # =========================================================================
    path("access-events/",                  views.access_event_list_create,  name="access-event-list"),
    path("dashboard/",                      views.dashboard_stats,           name="dashboard"),

    # =========================================================================
    # USERS
    # =========================================================================
    path("users/",                          views.user_list_create,          name="user-list"),
    path("users/<uuid:user_id>/reset-password/", views.user_reset_password,  name="user-reset-password"),
]
