from . import (
    crud_form,
    crud_response,
    crud_role,
    crud_template,
    crud_user,
    crud_version,
)
