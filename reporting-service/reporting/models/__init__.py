from reporting.models.report import Report, ReportStatus, UndeliveredReportRequest

# MongoEngine field options are sometimes counter-intuitive and not well documented
# Here a combination of options and the resulting behavior is documented for future reference
#
#   + A field that has a default value and is always saved to the DB *
#         field = db.DateTimeField(required=True, default=lambda: datetime.utcnow())
#
#   + A field that can also be None:
#         field = db.StringField(null=True)
#     When `None` the field is not saved into the database and reads back as None
#
#     What DOES NOT work:
#     - StringField(required=True, null=True)
#         The field is required and a validation exception is raised when it is `null`
