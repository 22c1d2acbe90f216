"""GraphQL documents sent to the Wodby API."""

APP_BUILD_FIELDS = """
    id
    number
    gitRefType
    gitRef
    config {
        registryHost
        appServiceBuildConfigs {
            name
            title
            slug
            managed
            main
            image
            dockerfile
            dockerignore
            buildArgs
        }
    }
"""

APP_BUILD = (
    """
query appBuild($id: Int!) {
    appBuild(id: $id) {"""
    + APP_BUILD_FIELDS
    + """    }
}
"""
)

NEW_CI_BUILD = (
    """
mutation newCIBuild($input: NewBuildFromCIInput!) {
    appBuild: newCIBuild(input: $input) {"""
    + APP_BUILD_FIELDS
    + """    }
}
"""
)

DOCKER_REGISTRY_CREDENTIALS = """
query dockerRegistryCredentials($appBuildID: Int!) {
    dockerRegistryCredentials(appBuildID: $appBuildID) {
        host
        username
        password
    }
}
"""

DEPLOY = """
mutation deploy($input: DeploymentInput!) {
    appDeployment: deploy(input: $input) {
        id
        taskId
        status
    }
}
"""

TASK = """
query task($id: ID!) {
    task(id: $id) {
        id
        title
        status
    }
}
"""
