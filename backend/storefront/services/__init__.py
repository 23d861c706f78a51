# Overview: Service layer package; business logic and database work for each resource.
